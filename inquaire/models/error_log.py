import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid
from sqlalchemy.sql import func

from inquaire.database import Base, JSONType


class ErrorLog(Base):
    __tablename__ = "error_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    error_type = Column(Text, nullable=False)  # e.g. LINE_WEBHOOK, ANALYSIS_JOB
    error_message = Column(Text, nullable=False)
    stack_trace = Column(Text)
    context = Column(JSONType, nullable=False, default=dict)
    resolved = Column(Boolean, nullable=False, default=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
