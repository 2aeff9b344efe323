from typing import Any, List, Optional

from pydantic import BaseModel


class InstagramParticipant(BaseModel):
    id: str


class InstagramMessage(BaseModel):
    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False
    is_deleted: bool = False
    attachments: Optional[List[Any]] = None


class InstagramMessaging(BaseModel):
    sender: InstagramParticipant
    recipient: Optional[InstagramParticipant] = None
    timestamp: Optional[int] = None
    message: Optional[InstagramMessage] = None
    postback: Optional[Any] = None
    reaction: Optional[Any] = None


class InstagramEntry(BaseModel):
    id: Optional[str] = None
    time: Optional[int] = None
    messaging: List[InstagramMessaging] = []


class InstagramWebhookPayload(BaseModel):
    object: Optional[str] = None
    entry: List[InstagramEntry] = []
