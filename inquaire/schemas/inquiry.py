from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel

from inquaire.models.enums import InquiryStatus


class InquiryStatusUpdate(BaseModel):
    status: InquiryStatus


class InquiryStatusResponse(BaseModel):
    id: UUID
    status: InquiryStatus
    completed_at: Optional[datetime] = None


class InquiryStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_sentiment: Dict[str, int]
    by_urgency: Dict[str, int]
    by_type: Dict[str, int]
