# qr/quota.py

import logging

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

QUOTA_COLLECTION = "user_quotas"

async def _ensure_counter(database, user_oid: ObjectId) -> None:
    # First use seeds the counter from the codes already active for the user
    active = await database["qrcodes"].count_documents({"assigned_to": user_oid, "is_active": True})
    try:
        await database[QUOTA_COLLECTION].update_one(
            {"_id": user_oid},
            {"$setOnInsert": {"active_codes": active}},
            upsert=True,
        )
    except DuplicateKeyError:
        # a concurrent request created it first
        pass

async def reserve_active_slot(database, user_oid: ObjectId, limit: int) -> bool:
    """
    Claims one active-code slot for a user.

    The check and the increment are one conditional update on the per-user
    counter document, so concurrent callers can never push it past `limit`.
    Returns False when the user is already at the limit.
    """
    await _ensure_counter(database, user_oid)
    claimed = await database[QUOTA_COLLECTION].find_one_and_update(
        {"_id": user_oid, "active_codes": {"$lt": limit}},
        {"$inc": {"active_codes": 1}},
    )
    if claimed is None:
        logger.info("User %s is at the limit of %d active QR codes", user_oid, limit)
        return False
    return True

async def release_active_slot(database, user_oid: ObjectId) -> None:
    """Gives back a slot after a failed insert or a deactivation."""
    await database[QUOTA_COLLECTION].update_one(
        {"_id": user_oid, "active_codes": {"$gt": 0}},
        {"$inc": {"active_codes": -1}},
    )
