from typing import List, Optional

from pydantic import BaseModel


class LineSource(BaseModel):
    type: Optional[str] = None
    userId: Optional[str] = None
    groupId: Optional[str] = None
    roomId: Optional[str] = None


class LineMessage(BaseModel):
    id: Optional[str] = None
    type: str
    text: Optional[str] = None


class LineEvent(BaseModel):
    type: str
    timestamp: Optional[int] = None
    source: Optional[LineSource] = None
    message: Optional[LineMessage] = None
    replyToken: Optional[str] = None
    webhookEventId: Optional[str] = None


class LineWebhookPayload(BaseModel):
    destination: Optional[str] = None
    events: List[LineEvent] = []
