import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from inquaire.models import Business, Customer, Inquiry, InquiryStatus, Platform
from inquaire.services.customer_service import resolve_customer
from inquaire.services.inquiry_service import (
    BusinessMismatchError,
    ChannelNotFoundError,
    CustomerNotFoundError,
    EmptyMessageError,
    InquiryNotFoundError,
    apply_analysis,
    create_inquiry,
    update_inquiry_status,
)

ANALYSIS = {
    "type": "booking inquiry",
    "summary": "Wants a cleaning on Friday",
    "sentiment": "positive",
    "urgency": "medium",
    "suggested_reply": "Friday works, what time suits you?",
    "confidence": 0.9,
    "extracted_info": {"desired_date": "2026-10-23"},
}


@pytest.fixture
def customer(db_session, seed):
    customer, _ = resolve_customer(
        db_session, business_id=seed.business.id, platform=Platform.LINE, platform_user_id="U1"
    )
    return customer


class TestCreateInquiry:
    def test_creates_new_inquiry_and_bumps_contact(self, db_session, seed, customer):
        channel = seed.channels[Platform.LINE]
        inquiry = create_inquiry(
            db_session,
            channel_id=channel.id,
            customer_id=customer.id,
            message_text="  Can I book Friday?  ",
            platform_message_id="m-1",
        )

        assert inquiry.status == InquiryStatus.NEW.value
        assert inquiry.business_id == seed.business.id
        assert inquiry.message_text == "Can I book Friday?"
        assert inquiry.analyzed_at is None

        db_session.expire_all()
        refreshed = db_session.get(Customer, customer.id)
        assert refreshed.inquiry_count == 1

    def test_counter_increments_per_inquiry(self, db_session, seed, customer):
        channel = seed.channels[Platform.LINE]
        for text in ("one", "two", "three"):
            create_inquiry(db_session, channel_id=channel.id, customer_id=customer.id, message_text=text)
        db_session.expire_all()
        assert db_session.get(Customer, customer.id).inquiry_count == 3

    def test_empty_text_rejected(self, db_session, seed, customer):
        with pytest.raises(EmptyMessageError):
            create_inquiry(db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=customer.id, message_text="  ")

    def test_unknown_channel_rejected(self, db_session, customer):
        with pytest.raises(ChannelNotFoundError) as exc_info:
            create_inquiry(db_session, channel_id=uuid.uuid4(), customer_id=customer.id, message_text="hi")
        assert exc_info.value.status_code == 404

    def test_unknown_customer_rejected(self, db_session, seed):
        with pytest.raises(CustomerNotFoundError):
            create_inquiry(db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=uuid.uuid4(), message_text="hi")

    def test_customer_from_other_business_rejected(self, db_session, seed):
        other = Business(name="Other", industry_type="OTHER")
        db_session.add(other)
        db_session.commit()
        stranger, _ = resolve_customer(db_session, business_id=other.id, platform=Platform.LINE, platform_user_id="U9")

        with pytest.raises(BusinessMismatchError):
            create_inquiry(db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=stranger.id, message_text="hi")

    def test_counter_failure_rolls_back_inquiry(self, db_session, seed, customer):
        channel = seed.channels[Platform.LINE]
        with patch(
            "inquaire.services.inquiry_service._record_customer_contact",
            side_effect=OperationalError("UPDATE customers", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(OperationalError):
                create_inquiry(db_session, channel_id=channel.id, customer_id=customer.id, message_text="hi")

        assert db_session.query(Inquiry).count() == 0
        db_session.expire_all()
        assert db_session.get(Customer, customer.id).inquiry_count == 0


class TestApplyAnalysis:
    def test_writes_fields_once(self, db_session, seed, customer):
        inquiry = create_inquiry(
            db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=customer.id, message_text="hi"
        )

        assert apply_analysis(db_session, inquiry_id=inquiry.id, analysis=ANALYSIS, model="gpt-4o-mini", processing_time_ms=120)
        db_session.expire_all()
        stored = db_session.get(Inquiry, inquiry.id)
        assert stored.status == InquiryStatus.IN_PROGRESS.value
        assert stored.sentiment == "positive"
        assert stored.extracted_info == {"desired_date": "2026-10-23"}
        assert stored.reply_text == ANALYSIS["suggested_reply"]
        assert stored.ai_processing_time_ms == 120
        assert stored.analyzed_at is not None

        second = dict(ANALYSIS, sentiment="negative")
        assert apply_analysis(db_session, inquiry_id=inquiry.id, analysis=second, model="gpt-4o-mini", processing_time_ms=5) is False
        db_session.expire_all()
        assert db_session.get(Inquiry, inquiry.id).sentiment == "positive"


class TestUpdateInquiryStatus:
    def test_completed_sets_completed_at(self, db_session, seed, customer):
        inquiry = create_inquiry(
            db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=customer.id, message_text="hi"
        )
        updated = update_inquiry_status(db_session, inquiry.id, InquiryStatus.COMPLETED)
        assert updated.status == InquiryStatus.COMPLETED.value
        assert updated.completed_at is not None

    def test_on_hold_leaves_completed_at_empty(self, db_session, seed, customer):
        inquiry = create_inquiry(
            db_session, channel_id=seed.channels[Platform.LINE].id, customer_id=customer.id, message_text="hi"
        )
        updated = update_inquiry_status(db_session, inquiry.id, InquiryStatus.ON_HOLD)
        assert updated.completed_at is None

    def test_missing_inquiry(self, db_session):
        with pytest.raises(InquiryNotFoundError):
            update_inquiry_status(db_session, uuid.uuid4(), InquiryStatus.COMPLETED)

