"""Inbound webhook pipeline shared by every platform route.

origin allow-list -> channel lookup -> signature -> rate limit -> parse ->
audit -> adapt -> per message: timestamp window, replay guard, customer
upsert, inquiry transaction, analysis enqueue, stats invalidation.
"""

import hmac
import json
from dataclasses import dataclass, field
from typing import List, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from inquaire.channels import PayloadValidationError, get_adapter
from inquaire.channels.base import InboundMessage
from inquaire.config import Settings
from inquaire.logging_config import get_logger
from inquaire.models import Channel, Inquiry, Platform
from inquaire.services.audit_service import mark_webhook_event, record_error_log, record_webhook_event
from inquaire.services.cache_service import CacheService
from inquaire.services.customer_service import resolve_customer
from inquaire.services.inquiry_service import ChannelNotFoundError, EmptyMessageError, InquiryValidationError, create_inquiry
from inquaire.services.job_service import enqueue_analysis_job
from inquaire.services.rate_limit_service import check_rate_limit
from inquaire.services.replay_guard import ReplayGuard
from inquaire.services.security_service import SecurityValidator
from inquaire.services.stats_service import invalidate_stats_cache

logger = get_logger("webhook_gateway")


class RateLimitExceeded(Exception):
    def __init__(self, message: str = "Too many webhook requests"):
        self.message = message
        super().__init__(message)


@dataclass
class IngestionResult:
    inquiry_ids: List[UUID] = field(default_factory=list)
    duplicates: int = 0
    skipped: int = 0

    @property
    def message(self) -> str:
        if self.inquiry_ids:
            return f"Created {len(self.inquiry_ids)} inquiry(ies)"
        if self.duplicates:
            return "Duplicate event ignored"
        return "No supported messages in payload"


def load_channel(db: Session, channel_id: UUID, platform: Platform) -> Channel:
    channel = (
        db.query(Channel)
        .filter(Channel.id == channel_id, Channel.deleted_at.is_(None), Channel.is_active.is_(True))
        .first()
    )
    if not channel or channel.platform != platform.value:
        raise ChannelNotFoundError(f"Channel {channel_id} not found")
    return channel


def verify_instagram_subscription(
    channel: Channel,
    *,
    mode: Optional[str],
    verify_token: Optional[str],
    challenge: Optional[str],
    settings: Settings,
) -> Optional[str]:
    """Return the challenge to echo back, or None when the handshake is not valid.

    The channel's own webhook secret is the verify token when set, otherwise
    the deployment-wide INSTAGRAM_VERIFY_TOKEN.
    """
    expected = (channel.webhook_secret or "").strip() or settings.instagram_verify_token
    if mode != "subscribe" or not expected or not verify_token or challenge is None:
        return None
    if not hmac.compare_digest(verify_token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("Instagram verify token mismatch", extra={"context": {"channel_id": str(channel.id)}})
        return None
    return challenge


class WebhookGateway:
    def __init__(
        self,
        db: Session,
        *,
        settings: Settings,
        redis_client=None,
        validator: Optional[SecurityValidator] = None,
        replay_guard: Optional[ReplayGuard] = None,
        cache: Optional[CacheService] = None,
    ):
        self.db = db
        self.settings = settings
        self.redis_client = redis_client
        self.validator = validator or SecurityValidator(settings)
        self.replay_guard = replay_guard or ReplayGuard(redis_client, ttl_seconds=settings.replay_ttl_seconds)
        self.cache = cache or CacheService(
            redis_client,
            lock_ttl_seconds=settings.cache_lock_ttl_seconds,
            lock_wait_seconds=settings.cache_lock_wait_seconds,
        )

    async def handle(
        self,
        platform: Platform,
        channel_id: UUID,
        *,
        raw_body: bytes,
        headers: Mapping[str, str],
        peer_host: Optional[str],
        url: str,
    ) -> IngestionResult:
        client_ip = self.validator.client_ip(headers, peer_host)
        # Foreign origins are rejected before the channel id is looked up.
        origin_checked = self.validator.validate_origin(platform, client_ip=client_ip, url=url)
        channel = load_channel(self.db, channel_id, platform)
        self.validator.validate_signature(
            platform,
            raw_body=raw_body,
            headers=headers,
            client_ip=client_ip,
            url=url,
            secret=self.validator.resolve_secret(platform, channel.webhook_secret),
            origin_checked=origin_checked,
        )

        allowed = await check_rate_limit(
            self.redis_client,
            key=f"rate:webhook:{channel.id}",
            limit=self.settings.webhook_rate_limit_requests,
            window_seconds=self.settings.webhook_rate_limit_window_seconds,
        )
        if not allowed:
            logger.warning("Webhook rate limit exceeded", extra={"context": {"channel_id": str(channel.id)}})
            raise RateLimitExceeded()

        payload = self._parse_body(raw_body)
        adapter = get_adapter(platform)
        event_id = record_webhook_event(
            self.db,
            channel_id=channel.id,
            platform=platform.value,
            event_type=adapter.event_type(payload),
            payload=payload,
        )

        try:
            messages = adapter.adapt(payload)
            result = IngestionResult()
            for message in messages:
                await self._ingest_message(channel, message, result)
        except (PayloadValidationError, InquiryValidationError) as exc:
            mark_webhook_event(self.db, event_id, error_message=exc.message)
            raise
        except Exception as exc:
            logger.error(
                "Webhook ingestion failed",
                exc_info=True,
                extra={"context": {"platform": platform.value, "channel_id": str(channel.id), "error": str(exc)}},
            )
            record_error_log(
                self.db,
                error_type=f"{platform.value}_WEBHOOK",
                error=exc,
                context={"channel_id": channel.id, "platform": platform.value, "url": url, "client_ip": client_ip},
            )
            mark_webhook_event(self.db, event_id, error_message=str(exc) or type(exc).__name__)
            raise

        mark_webhook_event(self.db, event_id)
        logger.info(
            "Webhook processed",
            extra={
                "context": {
                    "platform": platform.value,
                    "channel_id": str(channel.id),
                    "messages": len(messages),
                    "inquiries": len(result.inquiry_ids),
                    "duplicates": result.duplicates,
                    "skipped": result.skipped,
                }
            },
        )
        return result

    @staticmethod
    def _parse_body(raw_body: bytes) -> dict:
        if not raw_body or not raw_body.strip():
            raise PayloadValidationError("Empty payload")
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PayloadValidationError("Invalid JSON payload") from exc
        if not isinstance(payload, dict):
            raise PayloadValidationError("Invalid payload format")
        return payload

    async def _ingest_message(self, channel: Channel, message: InboundMessage, result: IngestionResult) -> None:
        platform = message.platform.value
        context = {"platform": platform, "channel_id": str(channel.id), "event_id": message.platform_message_id}

        if message.event_timestamp_ms is not None and not self.replay_guard.is_timestamp_valid(
            message.event_timestamp_ms, self.settings.replay_max_age_seconds
        ):
            logger.warning("Webhook event outside timestamp window, skipped", extra={"context": context})
            result.skipped += 1
            return

        if not message.text:
            raise EmptyMessageError("Message text is empty")

        if await self.replay_guard.is_duplicate(message.platform_message_id, platform):
            result.duplicates += 1
            return

        try:
            customer, _ = resolve_customer(
                self.db,
                business_id=channel.business_id,
                platform=message.platform,
                platform_user_id=message.platform_user_id,
                display_name=message.sender_display_name,
            )
            inquiry = create_inquiry(
                self.db,
                channel_id=channel.id,
                customer_id=customer.id,
                message_text=message.text,
                platform_message_id=message.platform_message_id,
            )
        except Exception:
            # Let the platform's redelivery through instead of dropping it as a duplicate.
            await self.replay_guard.forget(message.platform_message_id, platform)
            raise

        result.inquiry_ids.append(inquiry.id)
        self._dispatch_analysis(inquiry)
        await invalidate_stats_cache(self.cache, channel.business_id)

    def _dispatch_analysis(self, inquiry: Inquiry) -> None:
        try:
            enqueue_analysis_job(
                self.db,
                inquiry_id=inquiry.id,
                business_id=inquiry.business_id,
                max_attempts=self.settings.analysis_max_attempts,
            )
        except Exception as exc:
            self.db.rollback()
            logger.error(
                "Analysis enqueue failed, left for reconciliation",
                extra={"context": {"inquiry_id": str(inquiry.id), "error": str(exc)}},
            )
            record_error_log(
                self.db,
                error_type="ANALYSIS_ENQUEUE",
                error=exc,
                context={"inquiry_id": inquiry.id, "business_id": inquiry.business_id},
            )
