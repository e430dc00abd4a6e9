# qr/analytics.py

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId

from models.schemas import Granularity, Period
from qr.recorder import bucket_key

# Window sizes in calendar days; the current day counts as one.
PERIOD_DAYS: Dict[str, Optional[int]] = {"24h": 1, "7d": 7, "30d": 30, "all": None}

TOP_CODES_LIMIT = 5

_ANALYTICS_PROJECTION = {
    "code_id": 1,
    "website_title": 1,
    "website_url": 1,
    "category_id": 1,
    "is_active": 1,
    "scan_count": 1,
    "scan_buckets": 1,
    "last_scanned": 1,
}

def period_start_key(period: Period, today: Optional[date] = None) -> Optional[str]:
    days = PERIOD_DAYS[period]
    if days is None:
        return None
    today = today or datetime.now(timezone.utc).date()
    return bucket_key(today - timedelta(days=days - 1))

def timeline_key(day_key: str, granularity: Granularity) -> str:
    if granularity == "weekly":
        year, week, _ = date.fromisoformat(day_key).isocalendar()
        return f"{year}-W{week:02d}"
    return day_key

def _percentages(counts: Counter, total: int) -> List[Dict[str, Any]]:
    return [
        {"device": device, "count": count, "percentage": round(count * 100 / total) if total else 0}
        for device, count in counts.most_common()
    ]

def _str_id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None

def _to_object_id(value: Optional[str]) -> Optional[ObjectId]:
    if value is None:
        return None
    if not ObjectId.is_valid(value):
        raise ValueError(f"Invalid id: {value}")
    return ObjectId(value)

async def _category_lookup(database, category_ids) -> Dict[Any, Dict[str, Any]]:
    if not category_ids:
        return {}
    cursor = database["categories"].find({"_id": {"$in": list(category_ids)}}, {"name": 1, "color": 1})
    return {doc["_id"]: doc async for doc in cursor}

async def compute_analytics(
    database,
    period: Period = "all",
    granularity: Granularity = "daily",
    category_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Rolls up scan activity by category, device class and time bucket.

    Every figure is derived from the counters and buckets that the scan recorder
    bumps in one atomic update, so for period="all" the per-category, per-device
    and per-bucket totals each add up to the sum of scan_count. Scans counted
    before buckets existed are reported separately as unbucketedScans.
    """
    query: Dict[str, Any] = {}
    if category_id:
        query["category_id"] = _to_object_id(category_id)
    if assigned_to:
        query["assigned_to"] = _to_object_id(assigned_to)

    start_key = period_start_key(period, today)

    category_totals: Counter = Counter()
    device_totals: Counter = Counter()
    timeline: Counter = Counter()
    per_code: List[Dict[str, Any]] = []
    unbucketed = 0
    code_count = 0

    async for doc in database["qrcodes"].find(query, _ANALYTICS_PROJECTION):
        code_count += 1
        bucketed = 0
        for day, devices in (doc.get("scan_buckets") or {}).items():
            if start_key is not None and day < start_key:
                continue
            day_total = sum(devices.values())
            bucketed += day_total
            timeline[timeline_key(day, granularity)] += day_total
            device_totals.update(devices)

        if start_key is None:
            # counter is the source of truth for all-time totals
            code_total = doc.get("scan_count", 0)
            unbucketed += max(code_total - bucketed, 0)
        else:
            code_total = bucketed

        category_totals[doc.get("category_id")] += code_total
        per_code.append({
            "codeId": doc["code_id"],
            "websiteTitle": doc.get("website_title"),
            "websiteURL": doc.get("website_url"),
            "categoryId": _str_id(doc.get("category_id")),
            "isActive": doc.get("is_active", True),
            "totalScans": code_total,
            "lastScanned": doc.get("last_scanned"),
        })

    categories = await _category_lookup(database, [cid for cid in category_totals if cid is not None])
    category_scans = []
    for cid, total in category_totals.most_common():
        info = categories.get(cid, {})
        category_scans.append({
            "categoryId": _str_id(cid),
            "name": info.get("name", "Uncategorized"),
            "color": info.get("color"),
            "totalScans": total,
        })

    total_scans = sum(category_totals.values())
    per_code.sort(key=lambda item: item["totalScans"], reverse=True)

    return {
        "period": period,
        "granularity": granularity,
        "totalQRCodes": code_count,
        "totalScans": total_scans,
        "unbucketedScans": unbucketed,
        "categoryScans": category_scans,
        "deviceScans": _percentages(device_totals, sum(device_totals.values())),
        "timeline": [{"bucket": key, "scans": timeline[key]} for key in sorted(timeline)],
        "qrCodeScans": per_code,
    }

async def compute_stats(database) -> Dict[str, Any]:
    """Headline numbers for the admin dashboard."""
    qrcodes = database["qrcodes"]
    total_codes = await qrcodes.count_documents({})
    active_codes = await qrcodes.count_documents({"is_active": True})

    totals = await qrcodes.aggregate([
        {"$group": {"_id": None, "totalScans": {"$sum": "$scan_count"}}},
    ]).to_list(length=1)
    total_scans = totals[0]["totalScans"] if totals else 0

    top = await qrcodes.find(
        {},
        {"code_id": 1, "website_title": 1, "scan_count": 1, "is_active": 1},
        sort=[("scan_count", -1)],
        limit=TOP_CODES_LIMIT,
    ).to_list(length=TOP_CODES_LIMIT)

    return {
        "totalQRCodes": total_codes,
        "activeQRCodes": active_codes,
        "inactiveQRCodes": total_codes - active_codes,
        "totalScans": total_scans,
        "averageScansPerCode": round(total_scans / total_codes) if total_codes else 0,
        "topPerformingCodes": [
            {
                "codeId": doc["code_id"],
                "title": doc.get("website_title"),
                "scans": doc.get("scan_count", 0),
                "isActive": doc.get("is_active", True),
            }
            for doc in top
        ],
    }

async def compute_code_scan_stats(database, code_id: str) -> Dict[str, Any]:
    """First/last scan and distinct visitors for one code, from the detailed scan log."""
    first = await database["scans"].find_one({"code_id": code_id}, sort=[("timestamp", 1)])
    last = await database["scans"].find_one({"code_id": code_id}, sort=[("timestamp", -1)])
    unique_ips = await database["scans"].distinct("ip_address", {"code_id": code_id})
    logged = await database["scans"].count_documents({"code_id": code_id})
    by_device: Dict[str, int] = defaultdict(int)
    async for scan in database["scans"].find({"code_id": code_id}, {"device_info.device_type": 1}):
        by_device[(scan.get("device_info") or {}).get("device_type", "unknown")] += 1
    return {
        "loggedScans": logged,
        "firstScan": first["timestamp"] if first else None,
        "lastScan": last["timestamp"] if last else None,
        "uniqueIPs": len(unique_ips),
        "deviceBreakdown": dict(by_device),
    }
