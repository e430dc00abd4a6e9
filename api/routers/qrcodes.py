import logging
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse, Response
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from models.schemas import (
    QRCodeSchema, QRCodeGenerateRequest, QRCodeUpdateRequest, ScanSchema,
    UserSchema, Period, Granularity,
)
from core.config import MAX_QR_CODES_PER_USER, RECENT_SCANS_LIMIT
from core.database import get_database, store_image_in_gridfs, get_image_from_gridfs
from core.exceptions import StorageUnavailableError
from core.security import get_current_user, require_admin, ensure_owner_or_admin
from qr.analytics import compute_analytics, compute_stats, compute_code_scan_stats
from qr.identifiers import insert_with_unique_code_id
from qr.images import image_path, render_qr_png, verification_url
from qr.quota import release_active_slot, reserve_active_slot
from qr.recorder import record_scan
from qr.resolver import resolve_or_raise, build_public_view, normalize_target_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qrcodes", tags=["qrcodes"])

def _object_id(value: str, what: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {what} ID format")
    return ObjectId(value)

def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "Unknown"

def _serialize(record) -> dict:
    return QRCodeSchema.model_validate(record).model_dump(by_alias=True)

async def _reserve_slot(database, user_oid: ObjectId) -> None:
    if not await reserve_active_slot(database, user_oid, MAX_QR_CODES_PER_USER):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum {MAX_QR_CODES_PER_USER} active QR codes allowed per user",
        )

async def _require_category(database, category_oid: ObjectId) -> None:
    if await database["categories"].find_one({"_id": category_oid}, {"_id": 1}) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

# ========= Public routes (no authentication) =========

@router.get("/verify/{code_id}")
async def verify_qr_code(code_id: str, database = Depends(get_database)):
    """Read-only lookup for the verification page; does not count as a scan."""
    record = await resolve_or_raise(database, code_id)
    logger.debug("QR code verified: %s", code_id)
    return {
        "success": True,
        "valid": True,
        "qrCode": await build_public_view(database, record),
    }

@router.get("/scan/{code_id}")
async def scan_qr_code(code_id: str, request: Request, database = Depends(get_database)):
    record = await resolve_or_raise(database, code_id)

    # Counted before the redirect goes out; a failed count is logged, not surfaced
    await record_scan(
        database,
        record,
        user_agent=request.headers.get("user-agent"),
        ip_address=_client_ip(request),
    )
    return RedirectResponse(normalize_target_url(record["website_url"]), status_code=status.HTTP_302_FOUND)

# ========= Admin routes =========

@router.post("/generate", status_code=status.HTTP_201_CREATED)
async def generate_qr_code(
    payload: QRCodeGenerateRequest,
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    user_oid = _object_id(payload.user_id, "user")
    category_oid = _object_id(payload.category_id, "category")

    if await database["users"].find_one({"_id": user_oid}, {"_id": 1}) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    await _require_category(database, category_oid)
    await _reserve_slot(database, user_oid)

    now = datetime.now(timezone.utc)

    def build_document(code_id: str) -> dict:
        return {
            "website_url": payload.website_url,
            "website_title": payload.website_title,
            "assigned_to": user_oid,
            "category_id": category_oid,
            "image_url": image_path(code_id),
            "image_file_id": None,
            "is_active": True,
            "scan_count": 0,
            "scan_buckets": {},
            "last_scanned": None,
            "created_by": admin.id,
            "created_at": now,
            "updated_at": now,
        }

    try:
        record = await insert_with_unique_code_id(database["qrcodes"], build_document)
    except Exception:
        await release_active_slot(database, user_oid)
        raise
    code_id = record["code_id"]
    scan_url = verification_url(code_id)

    try:
        file_id = await store_image_in_gridfs(render_qr_png(scan_url), f"{code_id}.png", "image/png")
        await database["qrcodes"].update_one({"_id": record["_id"]}, {"$set": {"image_file_id": file_id}})
        record["image_file_id"] = file_id
    except (PyMongoError, StorageUnavailableError) as e:
        # image endpoint re-renders on demand
        logger.error("QR code %s stored without image: %s", code_id, e)

    logger.info("Admin %s generated QR code %s for user %s", admin.email, code_id, payload.user_id)
    return {
        "success": True,
        "message": "QR code generated successfully",
        "qrCode": _serialize(record),
        "scanUrl": scan_url,
    }

@router.get("")
async def list_qr_codes(
    category: Optional[str] = Query(None),
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    query = {}
    if category and category != "all":
        query["category_id"] = _object_id(category, "category")
    records = await database["qrcodes"].find(query, sort=[("created_at", -1)]).to_list(length=None)
    return {
        "success": True,
        "qrCodes": [_serialize(record) for record in records],
        "count": len(records),
    }

@router.get("/stats")
async def qr_code_stats(
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    return {"success": True, "stats": await compute_stats(database)}

@router.get("/analytics")
async def qr_code_analytics(
    period: Period = Query("all"),
    granularity: Granularity = Query("daily"),
    category: Optional[str] = Query(None),
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    if category and category != "all":
        _object_id(category, "category")
    else:
        category = None
    analytics = await compute_analytics(database, period=period, granularity=granularity, category_id=category)
    return {"success": True, "analytics": analytics}

# ========= Owner or admin routes =========

@router.get("/user/{user_id}")
async def list_user_qr_codes(
    user_id: str,
    database = Depends(get_database),
    current_user: UserSchema = Depends(get_current_user),
):
    ensure_owner_or_admin(current_user, user_id)
    user_oid = _object_id(user_id, "user")
    records = await database["qrcodes"].find({"assigned_to": user_oid}, sort=[("created_at", -1)]).to_list(length=None)
    return {
        "success": True,
        "qrCodes": [_serialize(record) for record in records],
        "count": len(records),
    }

@router.get("/user/{user_id}/analytics")
async def user_qr_code_analytics(
    user_id: str,
    period: Period = Query("all"),
    granularity: Granularity = Query("daily"),
    database = Depends(get_database),
    current_user: UserSchema = Depends(get_current_user),
):
    ensure_owner_or_admin(current_user, user_id)
    _object_id(user_id, "user")
    analytics = await compute_analytics(database, period=period, granularity=granularity, assigned_to=user_id)
    return {"success": True, "analytics": analytics}

@router.get("/{code_id}/image")
async def get_qr_code_image(
    code_id: str,
    database = Depends(get_database),
    current_user: UserSchema = Depends(get_current_user),
):
    record = await database["qrcodes"].find_one({"code_id": code_id})
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="QR code not found")
    ensure_owner_or_admin(current_user, str(record["assigned_to"]))

    png = None
    if record.get("image_file_id"):
        try:
            png = await get_image_from_gridfs(record["image_file_id"])
        except StorageUnavailableError as e:
            logger.warning("GridFS unavailable for %s, re-rendering: %s", code_id, e)
    if png is None:
        png = render_qr_png(verification_url(code_id))
    return Response(content=png, media_type="image/png")

@router.get("/{code_id}/details")
async def qr_code_details(
    code_id: str,
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    # Admins see deactivated codes too
    record = await database["qrcodes"].find_one({"code_id": code_id})
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="QR code not found")

    recent = await database["scans"].find(
        {"code_id": code_id}, sort=[("timestamp", -1)], limit=RECENT_SCANS_LIMIT
    ).to_list(length=RECENT_SCANS_LIMIT)

    scan_stats = await compute_code_scan_stats(database, code_id)
    scan_stats["totalScans"] = record.get("scan_count", 0)
    return {
        "success": True,
        "qrCode": _serialize(record),
        "recentScans": [ScanSchema.model_validate(scan).model_dump(by_alias=True) for scan in recent],
        "scanStats": scan_stats,
    }

@router.patch("/{code_id}")
async def update_qr_code(
    code_id: str,
    payload: QRCodeUpdateRequest,
    database = Depends(get_database),
    admin: UserSchema = Depends(require_admin),
):
    """Edits title, category or the active flag. Counters are never writable here."""
    existing = await database["qrcodes"].find_one({"code_id": code_id})
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="QR code not found")

    changes = {}
    if payload.website_title is not None:
        changes["website_title"] = payload.website_title
    if payload.category_id is not None:
        category_oid = _object_id(payload.category_id, "category")
        await _require_category(database, category_oid)
        changes["category_id"] = category_oid

    if not changes and payload.is_active is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes supplied")

    was_active = existing.get("is_active", True)
    toggled = payload.is_active is not None and payload.is_active != was_active
    if toggled and payload.is_active:
        await _reserve_slot(database, existing["assigned_to"])

    query = {"_id": existing["_id"]}
    if toggled:
        # flips only from the state we read; a concurrent flip makes this miss
        query["is_active"] = was_active
        changes["is_active"] = payload.is_active
    changes["updated_at"] = datetime.now(timezone.utc)
    updated = await database["qrcodes"].find_one_and_update(
        query,
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )

    if toggled and updated is None:
        if payload.is_active:
            await release_active_slot(database, existing["assigned_to"])
        del changes["is_active"]
        updated = await database["qrcodes"].find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
    elif toggled:
        if not payload.is_active:
            await release_active_slot(database, existing["assigned_to"])
        logger.info(
            "Admin %s %s QR code %s",
            admin.email, "reactivated" if payload.is_active else "deactivated", code_id,
        )
    return {"success": True, "message": "QR code updated successfully", "qrCode": _serialize(updated)}
