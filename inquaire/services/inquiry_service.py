from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from inquaire.logging_config import get_logger
from inquaire.models import Channel, Customer, Inquiry, InquiryStatus

logger = get_logger("inquiry_service")


class InquiryValidationError(Exception):
    """Request or configuration defect. Never retried."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ChannelNotFoundError(InquiryValidationError):
    status_code = 404


class CustomerNotFoundError(InquiryValidationError):
    pass


class BusinessMismatchError(InquiryValidationError):
    pass


class EmptyMessageError(InquiryValidationError):
    pass


class InquiryNotFoundError(InquiryValidationError):
    status_code = 404


def _record_customer_contact(db: Session, customer_id: UUID, now: datetime) -> None:
    result = db.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            last_contact_at=now,
            inquiry_count=Customer.inquiry_count + 1,
            updated_at=now,
        )
    )
    if result.rowcount == 0:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")


def create_inquiry(
    db: Session,
    *,
    channel_id: UUID,
    customer_id: UUID,
    message_text: str,
    platform_message_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Inquiry:
    """Insert a NEW inquiry and bump the customer's contact counter in one transaction."""
    text = (message_text or "").strip()
    if not text:
        raise EmptyMessageError("Message text is empty")

    channel = db.query(Channel).filter(Channel.id == channel_id, Channel.deleted_at.is_(None)).first()
    if not channel:
        raise ChannelNotFoundError(f"Channel {channel_id} not found")

    customer = db.query(Customer).filter(Customer.id == customer_id, Customer.deleted_at.is_(None)).first()
    if not customer:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")

    if customer.business_id != channel.business_id:
        raise BusinessMismatchError("Customer and channel belong to different businesses")

    now = now or datetime.now(timezone.utc)
    try:
        inquiry = Inquiry(
            business_id=channel.business_id,
            channel_id=channel.id,
            customer_id=customer.id,
            platform_message_id=platform_message_id,
            message_text=text,
            status=InquiryStatus.NEW.value,
            received_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(inquiry)
        db.flush()
        _record_customer_contact(db, customer.id, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Inquiry created",
        extra={
            "context": {
                "inquiry_id": str(inquiry.id),
                "business_id": str(inquiry.business_id),
                "channel_id": str(channel_id),
                "customer_id": str(customer_id),
            }
        },
    )
    return inquiry


def apply_analysis(
    db: Session,
    *,
    inquiry_id: UUID,
    analysis: dict,
    model: str,
    processing_time_ms: int,
    now: Optional[datetime] = None,
) -> bool:
    """Write analysis fields once. Returns False when the inquiry was already analyzed."""
    now = now or datetime.now(timezone.utc)
    result = db.execute(
        update(Inquiry)
        .where(Inquiry.id == inquiry_id, Inquiry.analyzed_at.is_(None))
        .values(
            type=analysis.get("type"),
            summary=analysis.get("summary"),
            sentiment=analysis.get("sentiment"),
            urgency=analysis.get("urgency"),
            extracted_info=analysis.get("extracted_info") or {},
            ai_confidence=analysis.get("confidence"),
            reply_text=analysis.get("suggested_reply") or None,
            ai_model=model,
            ai_processing_time_ms=processing_time_ms,
            analyzed_at=now,
            status=InquiryStatus.IN_PROGRESS.value,
            updated_at=now,
        )
    )
    db.commit()
    return result.rowcount > 0


def update_inquiry_status(
    db: Session,
    inquiry_id: UUID,
    status: InquiryStatus,
    *,
    now: Optional[datetime] = None,
) -> Inquiry:
    inquiry = db.query(Inquiry).filter(Inquiry.id == inquiry_id, Inquiry.deleted_at.is_(None)).first()
    if not inquiry:
        raise InquiryNotFoundError(f"Inquiry {inquiry_id} not found")

    now = now or datetime.now(timezone.utc)
    inquiry.status = status.value
    inquiry.updated_at = now
    if status == InquiryStatus.COMPLETED:
        inquiry.completed_at = now
    db.commit()
    return inquiry
