import uuid

from sqlalchemy import Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from inquaire.database import Base


class IndustryConfig(Base):
    __tablename__ = "industry_configs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    industry_type = Column(Text, nullable=False, unique=True)
    system_prompt = Column(Text)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
