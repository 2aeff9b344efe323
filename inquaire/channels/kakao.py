from typing import Any, List, Mapping

from inquaire.channels.base import InboundMessage, PayloadValidationError, PlatformAdapter
from inquaire.logging_config import get_logger
from inquaire.models.enums import Platform
from inquaire.schemas.kakao import KakaoContent, KakaoWebhookPayload
from inquaire.services.replay_guard import build_event_id

logger = get_logger("channels.kakao")

TEXT_TYPES = {"text", "message"}


class KakaoAdapter(PlatformAdapter):
    platform = Platform.KAKAO
    path_segment = "kakao"

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("type") or "message")

    def adapt(self, payload: Mapping[str, Any]) -> List[InboundMessage]:
        body = self._parse(KakaoWebhookPayload, payload)

        if (body.type or "").lower() not in TEXT_TYPES:
            logger.info("Kakao message type not supported", extra={"context": {"type": body.type}})
            return []

        sender_id = (body.user.id if body.user else None) or body.user_key
        if not sender_id:
            raise PayloadValidationError("Kakao payload has no user id")

        content = body.content
        text = content.text if isinstance(content, KakaoContent) else content
        nickname = None
        if body.user and body.user.properties:
            nickname = body.user.properties.nickname

        received_at_ms = self.now_ms()
        # Kakao sends no message id, so identity falls back to sender + receive time.
        return [
            InboundMessage(
                platform=self.platform,
                platform_user_id=sender_id,
                platform_message_id=build_event_id(None, sender_id, received_at_ms),
                text=(text or "").strip(),
                received_at_ms=received_at_ms,
                sender_display_name=nickname,
            )
        ]
