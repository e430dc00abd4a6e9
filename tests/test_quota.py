"""
Unit Tests for the per-user active code slots
"""
import asyncio

from qr.quota import QUOTA_COLLECTION, release_active_slot, reserve_active_slot


class TestReserveActiveSlot:

    async def test_seeds_from_existing_active_codes(self, db, make_qr_code, regular_user):
        await make_qr_code('live01')
        await make_qr_code('dead01', is_active=False)

        assert await reserve_active_slot(db, regular_user['_id'], limit=2) is True
        assert await reserve_active_slot(db, regular_user['_id'], limit=2) is False

        counter = await db[QUOTA_COLLECTION].find_one({'_id': regular_user['_id']})
        assert counter['active_codes'] == 2

    async def test_concurrent_reservations_stop_at_limit(self, db, regular_user):
        results = await asyncio.gather(*[
            reserve_active_slot(db, regular_user['_id'], limit=3) for _ in range(10)
        ])

        assert results.count(True) == 3
        counter = await db[QUOTA_COLLECTION].find_one({'_id': regular_user['_id']})
        assert counter['active_codes'] == 3

    async def test_release_frees_a_slot(self, db, regular_user):
        assert await reserve_active_slot(db, regular_user['_id'], limit=1) is True
        assert await reserve_active_slot(db, regular_user['_id'], limit=1) is False

        await release_active_slot(db, regular_user['_id'])

        assert await reserve_active_slot(db, regular_user['_id'], limit=1) is True

    async def test_release_never_goes_negative(self, db, regular_user):
        await reserve_active_slot(db, regular_user['_id'], limit=1)

        await release_active_slot(db, regular_user['_id'])
        await release_active_slot(db, regular_user['_id'])

        counter = await db[QUOTA_COLLECTION].find_one({'_id': regular_user['_id']})
        assert counter['active_codes'] == 0

    async def test_release_without_counter_is_noop(self, db, regular_user):
        await release_active_slot(db, regular_user['_id'])

        assert await db[QUOTA_COLLECTION].count_documents({}) == 0
