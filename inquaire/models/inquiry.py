import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from inquaire.database import Base, JSONType


class Inquiry(Base):
    __tablename__ = "inquiries"
    __table_args__ = (Index("ix_inquiries_business_status", "business_id", "status"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    channel_id = Column(Uuid(as_uuid=True), ForeignKey("channels.id"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    platform_message_id = Column(Text)
    message_text = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="NEW")  # NEW, IN_PROGRESS, COMPLETED, ON_HOLD
    received_at = Column(DateTime(timezone=True), nullable=False)

    type = Column(Text)
    summary = Column(Text)
    sentiment = Column(Text)  # positive, neutral, negative
    urgency = Column(Text)  # high, medium, low
    extracted_info = Column(JSONType)
    ai_confidence = Column(Float)
    ai_model = Column(Text)
    ai_processing_time_ms = Column(Integer)
    analyzed_at = Column(DateTime(timezone=True))

    reply_text = Column(Text)
    replied_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True))

    channel = relationship("Channel")
    customer = relationship("Customer")
