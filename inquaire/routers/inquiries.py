from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inquaire.config import Settings, get_settings
from inquaire.database import get_db
from inquaire.redis_client import get_redis
from inquaire.routers.admin import require_admin_token
from inquaire.schemas.inquiry import InquiryStats, InquiryStatusResponse, InquiryStatusUpdate
from inquaire.services.cache_service import CacheService
from inquaire.services.inquiry_service import InquiryValidationError, update_inquiry_status
from inquaire.services.stats_service import get_inquiry_stats, invalidate_stats_cache

router = APIRouter(tags=["inquiries"], dependencies=[Depends(require_admin_token)])


def get_cache(redis_client=Depends(get_redis), settings: Settings = Depends(get_settings)) -> CacheService:
    return CacheService(
        redis_client,
        lock_ttl_seconds=settings.cache_lock_ttl_seconds,
        lock_wait_seconds=settings.cache_lock_wait_seconds,
    )


@router.get("/businesses/{business_id}/inquiries/stats", response_model=InquiryStats)
async def inquiry_stats(
    business_id: UUID,
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
    settings: Settings = Depends(get_settings),
):
    stats = await get_inquiry_stats(db, cache, business_id, start, end, ttl_seconds=settings.stats_cache_ttl_seconds)
    return InquiryStats(**stats)


@router.patch("/inquiries/{inquiry_id}/status", response_model=InquiryStatusResponse)
async def change_inquiry_status(
    inquiry_id: UUID,
    request: InquiryStatusUpdate,
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    try:
        inquiry = update_inquiry_status(db, inquiry_id, request.status)
    except InquiryValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    await invalidate_stats_cache(cache, inquiry.business_id)
    return InquiryStatusResponse(id=inquiry.id, status=inquiry.status, completed_at=inquiry.completed_at)
