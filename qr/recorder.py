# qr/recorder.py

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from core.config import SCAN_RECORD_ATTEMPTS
from models.schemas import DeviceInfo
from qr.devices import classify_user_agent

logger = logging.getLogger(__name__)

def bucket_key(moment: datetime) -> str:
    """Daily bucket key used in scan_buckets (UTC calendar day)."""
    return moment.strftime("%Y-%m-%d")

def build_scan_update(device: DeviceInfo, now: datetime) -> Dict[str, Any]:
    """
    The single atomic update applied per scan.

    Counter and the day/device bucket move together in one document write, so the
    buckets of a code always add up to its scan_count.
    """
    return {
        "$inc": {
            "scan_count": 1,
            f"scan_buckets.{bucket_key(now)}.{device.device_type}": 1,
        },
        "$set": {"last_scanned": now},
    }

async def record_scan(
    database,
    record: Dict[str, Any],
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
    attempts: Optional[int] = None,
) -> bool:
    """
    Counts one scan of an already-resolved QR code.

    Returns True once the counter has been incremented. Failures are logged and
    reported as False, never raised: the redirect must go out regardless.
    The detailed scan event is written after the counter and is best-effort.
    """
    max_attempts = attempts or SCAN_RECORD_ATTEMPTS
    device = classify_user_agent(user_agent)
    now = datetime.now(timezone.utc)
    update = build_scan_update(device, now)

    for attempt in range(1, max_attempts + 1):
        try:
            await database["qrcodes"].update_one({"_id": record["_id"]}, update)
            break
        except PyMongoError as e:
            logger.warning(
                "Scan increment for %s failed (attempt %d/%d): %s",
                record.get("code_id"), attempt, max_attempts, e,
            )
    else:
        logger.error("Dropping scan of %s after %d failed increments", record.get("code_id"), max_attempts)
        return False

    scan_event = {
        "code_id": record["code_id"],
        "qr_code_id": record["_id"],
        "ip_address": ip_address or "Unknown",
        "user_agent": user_agent or "Unknown",
        "device_info": device.model_dump(),
        "timestamp": now,
    }
    try:
        await database["scans"].insert_one(scan_event)
    except PyMongoError as e:
        # counters stay authoritative; only the per-scan detail is lost
        logger.error("Could not log scan event for %s: %s", record.get("code_id"), e)
    return True
