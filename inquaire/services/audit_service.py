"""Best-effort audit writes: raw webhook payloads and ingestion error records.

Failures here are logged and never interrupt the caller.
"""

import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from inquaire.logging_config import get_logger
from inquaire.models import ErrorLog, WebhookEvent

logger = get_logger("audit")


def record_webhook_event(
    db: Session,
    *,
    channel_id: UUID,
    platform: str,
    event_type: str,
    payload: dict,
) -> Optional[UUID]:
    try:
        event = WebhookEvent(
            channel_id=channel_id,
            platform=platform,
            event_type=event_type[:100],
            payload=payload,
            processed=False,
            received_at=datetime.now(timezone.utc),
        )
        db.add(event)
        db.commit()
        return event.id
    except Exception as e:
        db.rollback()
        logger.warning(
            "Webhook event audit write failed",
            extra={"context": {"channel_id": str(channel_id), "platform": platform, "error": str(e)}},
        )
        return None


def mark_webhook_event(db: Session, event_id: Optional[UUID], *, error_message: Optional[str] = None) -> None:
    if event_id is None:
        return
    try:
        db.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .values(
                processed=error_message is None,
                processed_at=datetime.now(timezone.utc),
                error_message=error_message[:1000] if error_message else None,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(
            "Webhook event audit update failed",
            extra={"context": {"event_id": str(event_id), "error": str(e)}},
        )


def record_error_log(
    db: Session,
    *,
    error_type: str,
    error: BaseException,
    context: Optional[dict] = None,
) -> None:
    try:
        db.rollback()
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        db.add(
            ErrorLog(
                error_type=error_type,
                error_message=(str(error) or type(error).__name__)[:2000],
                stack_trace=stack[-8000:],
                context={k: str(v) if v is not None else None for k, v in (context or {}).items()},
                resolved=False,
                occurred_at=datetime.now(timezone.utc),
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(
            "Error log write failed",
            extra={"context": {"error_type": error_type, "error": str(e)}},
        )
