from typing import Optional, Union

from pydantic import BaseModel


class KakaoUserProperties(BaseModel):
    nickname: Optional[str] = None
    plusfriend_user_key: Optional[str] = None


class KakaoUser(BaseModel):
    id: Optional[str] = None
    type: Optional[str] = None
    properties: Optional[KakaoUserProperties] = None


class KakaoContent(BaseModel):
    text: Optional[str] = None


class KakaoWebhookPayload(BaseModel):
    user_key: Optional[str] = None
    type: Optional[str] = None
    content: Optional[Union[str, KakaoContent]] = None
    user: Optional[KakaoUser] = None
