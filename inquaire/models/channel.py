import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from inquaire.database import Base


class Channel(Base):
    __tablename__ = "channels"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    platform = Column(Text, nullable=False)  # KAKAO, LINE, NAVER_TALK, INSTAGRAM
    platform_channel_id = Column(Text)
    name = Column(Text, nullable=False)
    access_token = Column(Text)
    webhook_secret = Column(Text)
    auto_reply_enabled = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True))

    business = relationship("Business", back_populates="channels")
