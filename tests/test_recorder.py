"""
Unit Tests for the scan recorder and resolver
"""
import asyncio
from datetime import datetime, timezone

import pytest
from pymongo.errors import AutoReconnect

from core.exceptions import QRCodeNotFoundError
from qr.devices import classify_user_agent
from qr.recorder import bucket_key, build_scan_update, record_scan
from qr.resolver import build_public_view, normalize_target_url, resolve_code, resolve_or_raise
from tests.ua_samples import DESKTOP_UA, IPHONE_UA


class _FlakyCollection:
    """Fails the first `failures` updates, then delegates"""

    def __init__(self, inner, failures):
        self._inner = inner
        self.failures = failures
        self.calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def update_one(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise AutoReconnect('connection reset')
        return await self._inner.update_one(*args, **kwargs)


class _BrokenScans:
    async def insert_one(self, *args, **kwargs):
        raise AutoReconnect('scan log unavailable')


class _StubDatabase(dict):
    pass


class TestBuildScanUpdate:

    def test_single_atomic_update(self):
        now = datetime(2026, 10, 18, 12, 30)

        update = build_scan_update(classify_user_agent(IPHONE_UA), now)

        assert update == {
            '$inc': {'scan_count': 1, 'scan_buckets.2026-10-18.mobile': 1},
            '$set': {'last_scanned': now},
        }


class TestRecordScan:

    async def test_increments_and_logs(self, db, make_qr_code):
        record = await make_qr_code('abc123')

        assert await record_scan(db, record, user_agent=DESKTOP_UA, ip_address='192.0.2.9') is True

        stored = await db['qrcodes'].find_one({'code_id': 'abc123'})
        assert stored['scan_count'] == 1
        assert stored['last_scanned'] is not None
        assert await db['scans'].count_documents({'code_id': 'abc123'}) == 1

    async def test_buckets_by_utc_day(self, db, make_qr_code):
        record = await make_qr_code('abc123')
        before = datetime.now(timezone.utc)

        await record_scan(db, record, user_agent=IPHONE_UA)

        stored = await db['qrcodes'].find_one({'code_id': 'abc123'})
        after = datetime.now(timezone.utc)
        assert list(stored['scan_buckets']) in ([bucket_key(before)], [bucket_key(after)])

    async def test_retries_transient_failures(self, db, make_qr_code):
        record = await make_qr_code('abc123')
        flaky = _FlakyCollection(db['qrcodes'], failures=2)
        stub = _StubDatabase(qrcodes=flaky, scans=db['scans'])

        assert await record_scan(stub, record, attempts=3) is True

        stored = await db['qrcodes'].find_one({'code_id': 'abc123'})
        assert flaky.calls == 3
        assert stored['scan_count'] == 1

    async def test_gives_up_and_reports_false(self, db, make_qr_code, caplog):
        record = await make_qr_code('abc123')
        flaky = _FlakyCollection(db['qrcodes'], failures=10)
        stub = _StubDatabase(qrcodes=flaky, scans=db['scans'])

        assert await record_scan(stub, record, attempts=3) is False

        assert flaky.calls == 3
        assert 'Dropping scan of abc123' in caplog.text
        assert await db['scans'].count_documents({}) == 0

    async def test_scan_log_failure_keeps_counter(self, db, make_qr_code, caplog):
        record = await make_qr_code('abc123')
        stub = _StubDatabase(qrcodes=db['qrcodes'], scans=_BrokenScans())

        assert await record_scan(stub, record) is True

        stored = await db['qrcodes'].find_one({'code_id': 'abc123'})
        assert stored['scan_count'] == 1
        assert 'Could not log scan event' in caplog.text

    async def test_concurrent_recording(self, db, make_qr_code):
        record = await make_qr_code('abc123', scan_count=3)

        results = await asyncio.gather(*[record_scan(db, record) for _ in range(100)])

        assert all(results)
        stored = await db['qrcodes'].find_one({'code_id': 'abc123'})
        assert stored['scan_count'] == 103


class TestResolver:

    async def test_resolves_active(self, db, make_qr_code):
        await make_qr_code('abc123')

        record = await resolve_code(db, 'abc123')

        assert record['website_url'] == 'https://example.com'

    async def test_inactive_and_unknown_both_none(self, db, make_qr_code):
        await make_qr_code('abc123', is_active=False)

        assert await resolve_code(db, 'abc123') is None
        assert await resolve_code(db, 'zzz999') is None
        assert await resolve_code(db, '') is None

    async def test_resolve_or_raise(self, db):
        with pytest.raises(QRCodeNotFoundError) as exc_info:
            await resolve_or_raise(db, 'zzz999')

        assert exc_info.value.code_id == 'zzz999'

    @pytest.mark.parametrize('stored, expected', [
        ('https://example.com', 'https://example.com'),
        ('http://example.com/a', 'http://example.com/a'),
        ('  example.com/a  ', 'https://example.com/a'),
        ('HTTPS://Example.com/Path', 'https://Example.com/Path'),
        ('Http://example.com', 'http://example.com'),
        ('example.com:8080/a', 'https://example.com:8080/a'),
    ])
    def test_normalize_target_url(self, stored, expected):
        assert normalize_target_url(stored) == expected

    async def test_public_view_without_category(self, db, make_qr_code):
        record = await make_qr_code('abc123', category_id=None)

        view = await build_public_view(db, record)

        assert view['category'] == {'id': None, 'name': None, 'color': None}
        assert view['assignedTo']['name'] == 'Alice'

    async def test_public_view_with_category(self, db, make_qr_code, category):
        record = await make_qr_code('abc123')

        view = await build_public_view(db, record)

        assert view['category']['id'] == str(category['_id'])
