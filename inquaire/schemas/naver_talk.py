from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class NaverTalkUser(BaseModel):
    userIdNo: str = Field(validation_alias=AliasChoices("userIdNo", "user_id_no"))
    maskingId: Optional[str] = None
    nickname: Optional[str] = None


class NaverTalkTextContent(BaseModel):
    text: Optional[str] = None
    code: Optional[str] = None
    inputType: Optional[str] = None


class NaverTalkOptions(BaseModel):
    inquiry: Optional[str] = None
    mobile: Optional[bool] = None


class NaverTalkWebhookPayload(BaseModel):
    partnerId: Optional[str] = None
    event: str
    user: NaverTalkUser
    textContent: Optional[NaverTalkTextContent] = None
    options: Optional[NaverTalkOptions] = None
