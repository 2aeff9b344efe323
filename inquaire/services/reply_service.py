"""Outbound replies through each platform's send API."""

from typing import Optional

import httpx

from inquaire.config import Settings
from inquaire.logging_config import get_logger
from inquaire.models import Channel, Platform

logger = get_logger("reply_service")

KAKAO_SEND_URL = "https://kapi.kakao.com/v1/api/talk/send"
LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
NAVER_TALK_SEND_URL = "https://gw.talk.naver.com/chatbot/v1/event"
INSTAGRAM_SEND_URL = "https://graph.facebook.com/v18.0/me/messages"


class ReplyNotConfiguredError(Exception):
    pass


def _token(channel: Channel, fallback: Optional[str]) -> str:
    token = channel.access_token or fallback
    if not token:
        raise ReplyNotConfiguredError(f"No access token for {channel.platform} channel {channel.id}")
    return token


def build_reply_request(channel: Channel, platform_user_id: str, text: str, settings: Settings) -> tuple[str, dict, dict]:
    """Return (url, headers, json body) for one text reply."""
    platform = Platform(channel.platform)
    if platform == Platform.KAKAO:
        token = _token(channel, settings.kakao_admin_key)
        return (
            KAKAO_SEND_URL,
            {"Authorization": f"KakaoAK {token}"},
            {"receiver_key": platform_user_id, "message": {"text": text}},
        )
    if platform == Platform.LINE:
        # Reply tokens expire within a minute, so the async worker pushes instead.
        token = _token(channel, settings.line_channel_access_token)
        return (
            LINE_PUSH_URL,
            {"Authorization": f"Bearer {token}"},
            {"to": platform_user_id, "messages": [{"type": "text", "text": text}]},
        )
    if platform == Platform.NAVER_TALK:
        token = _token(channel, None)
        return (
            NAVER_TALK_SEND_URL,
            {"Authorization": token, "Content-Type": "application/json;charset=UTF-8"},
            {"event": "send", "user": platform_user_id, "textContent": {"text": text}},
        )
    if platform == Platform.INSTAGRAM:
        token = _token(channel, settings.instagram_access_token)
        return (
            INSTAGRAM_SEND_URL,
            {"Authorization": f"Bearer {token}"},
            {"recipient": {"id": platform_user_id}, "message": {"text": text}},
        )
    raise ReplyNotConfiguredError(f"Platform {platform.value} has no send API")


def send_platform_reply(channel: Channel, platform_user_id: str, text: str, settings: Settings) -> bool:
    """Send one reply. Returns True on a 2xx; errors are logged, not raised."""
    try:
        url, headers, body = build_reply_request(channel, platform_user_id, text, settings)
    except (ReplyNotConfiguredError, ValueError) as e:
        logger.warning("Reply not sent", extra={"context": {"channel_id": str(channel.id), "error": str(e)}})
        return False

    try:
        with httpx.Client(timeout=settings.platform_send_timeout_seconds) as client:
            response = client.post(url, headers=headers, json=body)
    except httpx.HTTPError as e:
        logger.error(
            "Reply delivery failed",
            extra={"context": {"channel_id": str(channel.id), "platform": channel.platform, "error": str(e)}},
        )
        return False

    if response.status_code >= 300:
        logger.error(
            "Reply rejected by platform",
            extra={
                "context": {
                    "channel_id": str(channel.id),
                    "platform": channel.platform,
                    "status_code": response.status_code,
                    "body": response.text[:200],
                }
            },
        )
        return False

    logger.info("Reply sent", extra={"context": {"channel_id": str(channel.id), "platform": channel.platform}})
    return True
