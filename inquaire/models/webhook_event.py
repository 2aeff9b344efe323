import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from inquaire.database import Base, JSONType


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id = Column(Uuid(as_uuid=True), nullable=False)
    platform = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
