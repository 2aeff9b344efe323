from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from inquaire.logging_config import get_logger
from inquaire.models import Inquiry, InquiryStatus
from inquaire.services.cache_service import CacheService, generate_key

logger = get_logger("stats_service")

INQUIRY_STATS_TTL_SECONDS = 300
TOP_TYPES_LIMIT = 10


def stats_cache_key(business_id: UUID, start: Optional[datetime] = None, end: Optional[datetime] = None) -> str:
    start_part = start.isoformat() if start else "all"
    end_part = end.isoformat() if end else "all"
    return generate_key("stats", "inquiries", business_id, f"{start_part}_{end_part}")


def compute_inquiry_stats(
    db: Session,
    business_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    filters = [Inquiry.business_id == business_id, Inquiry.deleted_at.is_(None)]
    if start:
        filters.append(Inquiry.received_at >= start)
    if end:
        filters.append(Inquiry.received_at <= end)

    def _grouped(column, limit: Optional[int] = None) -> dict:
        query = (
            db.query(column, func.count(Inquiry.id))
            .filter(*filters, column.isnot(None))
            .group_by(column)
            .order_by(func.count(Inquiry.id).desc())
        )
        if limit:
            query = query.limit(limit)
        return {str(key): count for key, count in query.all()}

    total = db.query(func.count(Inquiry.id)).filter(*filters).scalar() or 0
    by_status = {status.value: 0 for status in InquiryStatus}
    by_status.update(_grouped(Inquiry.status))
    return {
        "total": total,
        "by_status": by_status,
        "by_sentiment": _grouped(Inquiry.sentiment),
        "by_urgency": _grouped(Inquiry.urgency),
        "by_type": _grouped(Inquiry.type, limit=TOP_TYPES_LIMIT),
    }


async def get_inquiry_stats(
    db: Session,
    cache: CacheService,
    business_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    *,
    ttl_seconds: int = INQUIRY_STATS_TTL_SECONDS,
) -> dict:
    async def _factory() -> dict:
        return compute_inquiry_stats(db, business_id, start, end)

    return await cache.get_or_set(stats_cache_key(business_id, start, end), _factory, ttl_seconds)


async def invalidate_stats_cache(cache: CacheService, business_id: UUID) -> None:
    """Drop dashboard and inquiry stats for a business after any inquiry write."""
    try:
        await cache.delete(generate_key("dashboard", "business", business_id))
        await cache.delete_pattern(generate_key("stats", "inquiries", business_id, "*"))
    except Exception as e:
        logger.warning(
            "Stats cache invalidation failed",
            extra={"context": {"business_id": str(business_id), "error": str(e)}},
        )
