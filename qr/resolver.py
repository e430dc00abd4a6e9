# qr/resolver.py

from typing import Any, Dict, Optional
from urllib.parse import urlparse

from bson import ObjectId

from core.exceptions import QRCodeNotFoundError

async def resolve_code(database, code_id: str) -> Optional[Dict[str, Any]]:
    """
    Looks up an active QR code by its code identifier.

    Unknown and deactivated codes both come back as None; callers must not be
    able to tell whether a code once existed.
    """
    if not code_id:
        return None
    return await database["qrcodes"].find_one({"code_id": code_id, "is_active": True})

async def resolve_or_raise(database, code_id: str) -> Dict[str, Any]:
    record = await resolve_code(database, code_id)
    if record is None:
        raise QRCodeNotFoundError(code_id)
    return record

def normalize_target_url(url: str) -> str:
    url = url.strip()
    scheme = urlparse(url).scheme
    if scheme in ("http", "https"):
        # lowercase a stored "HTTPS://" without touching the rest
        return scheme + url[len(scheme):]
    return "https://" + url

async def _lookup(database, collection: str, oid: Any, projection: Dict[str, int]) -> Optional[Dict[str, Any]]:
    if not isinstance(oid, ObjectId):
        if not ObjectId.is_valid(oid):
            return None
        oid = ObjectId(oid)
    return await database[collection].find_one({"_id": oid}, projection)

async def build_public_view(database, record: Dict[str, Any]) -> Dict[str, Any]:
    """Shapes a resolved record for the public verification page. The scan count is the stored, pre-increment value."""
    category = await _lookup(database, "categories", record.get("category_id"), {"name": 1, "color": 1})
    owner = await _lookup(database, "users", record.get("assigned_to"), {"name": 1})
    return {
        "codeId": record["code_id"],
        "websiteURL": record["website_url"],
        "websiteTitle": record["website_title"],
        "category": {
            "id": str(record["category_id"]) if record.get("category_id") else None,
            "name": category.get("name") if category else None,
            "color": category.get("color") if category else None,
        },
        "assignedTo": {"name": owner.get("name") if owner else None},
        "scanCount": record.get("scan_count", 0),
        "lastScanned": record.get("last_scanned"),
        "createdAt": record.get("created_at"),
    }
