import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from inquaire.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("business_id", "platform", "platform_user_id", name="uq_customers_business_platform_user"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    platform = Column(Text, nullable=False)
    platform_user_id = Column(Text, nullable=False)
    display_name = Column(Text)
    first_contact_at = Column(DateTime(timezone=True), nullable=False)
    last_contact_at = Column(DateTime(timezone=True), nullable=False)
    # Owned by the inquiry store transaction; never recomputed from inquiries.
    inquiry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    deleted_at = Column(DateTime(timezone=True))
