from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class AnalysisJobOut(BaseModel):
    id: UUID
    inquiry_id: UUID
    business_id: UUID
    status: str
    attempt: int
    max_attempts: int
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DeadJobList(BaseModel):
    jobs: List[AnalysisJobOut]


class JobRetryResponse(BaseModel):
    success: bool
    message: str
