"""Inbound platform webhooks.

POST /webhooks/{platform}/{channel_id} for Kakao, LINE, Naver TalkTalk and
Instagram, plus the Instagram subscription handshake (GET).
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from inquaire.channels import PayloadValidationError
from inquaire.config import Settings, get_settings
from inquaire.database import get_db
from inquaire.logging_config import get_logger
from inquaire.models import Platform
from inquaire.redis_client import get_redis
from inquaire.schemas.webhook import WebhookResponse
from inquaire.services.inquiry_service import InquiryValidationError
from inquaire.services.security_service import SecurityRejection
from inquaire.services.webhook_gateway import (
    RateLimitExceeded,
    WebhookGateway,
    load_channel,
    verify_instagram_subscription,
)

logger = get_logger("webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_gateway(
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis),
    settings: Settings = Depends(get_settings),
) -> WebhookGateway:
    return WebhookGateway(db, settings=settings, redis_client=redis_client)


async def _receive(platform: Platform, channel_id: UUID, request: Request, gateway: WebhookGateway) -> WebhookResponse:
    raw_body = await request.body()
    try:
        result = await gateway.handle(
            platform,
            channel_id,
            raw_body=raw_body,
            headers=request.headers,
            peer_host=request.client.host if request.client else None,
            url=str(request.url),
        )
    except SecurityRejection as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
    except RateLimitExceeded as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=e.message)
    except PayloadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except InquiryValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception:
        # Gateway already logged and stored the error; 500 makes the platform redeliver.
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook processing failed")

    return WebhookResponse(
        success=True,
        message=result.message,
        inquiry_ids=result.inquiry_ids,
        duplicates=result.duplicates,
        skipped=result.skipped,
    )


@router.post("/kakao/{channel_id}", response_model=WebhookResponse)
async def kakao_webhook(channel_id: UUID, request: Request, gateway: WebhookGateway = Depends(get_gateway)):
    return await _receive(Platform.KAKAO, channel_id, request, gateway)


@router.post("/line/{channel_id}", response_model=WebhookResponse)
async def line_webhook(channel_id: UUID, request: Request, gateway: WebhookGateway = Depends(get_gateway)):
    return await _receive(Platform.LINE, channel_id, request, gateway)


@router.post("/naver-talk/{channel_id}", response_model=WebhookResponse)
async def naver_talk_webhook(channel_id: UUID, request: Request, gateway: WebhookGateway = Depends(get_gateway)):
    return await _receive(Platform.NAVER_TALK, channel_id, request, gateway)


@router.post("/instagram/{channel_id}", response_model=WebhookResponse)
async def instagram_webhook(channel_id: UUID, request: Request, gateway: WebhookGateway = Depends(get_gateway)):
    return await _receive(Platform.INSTAGRAM, channel_id, request, gateway)


@router.get("/instagram/{channel_id}", response_class=PlainTextResponse)
def instagram_verify(
    channel_id: UUID,
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        channel = load_channel(db, channel_id, Platform.INSTAGRAM)
    except InquiryValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    echoed = verify_instagram_subscription(
        channel,
        mode=mode,
        verify_token=verify_token,
        challenge=challenge,
        settings=settings,
    )
    if echoed is None:
        logger.warning("Instagram subscription verification failed", extra={"context": {"channel_id": str(channel_id)}})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")
    return PlainTextResponse(echoed)
