from typing import List
from uuid import UUID

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    success: bool
    message: str
    inquiry_ids: List[UUID] = []
    duplicates: int = 0
    skipped: int = 0
