from typing import Any, List, Mapping

from inquaire.channels.base import InboundMessage, PlatformAdapter
from inquaire.logging_config import get_logger
from inquaire.models.enums import Platform
from inquaire.schemas.naver_talk import NaverTalkWebhookPayload
from inquaire.services.replay_guard import build_event_id

logger = get_logger("channels.naver_talk")


class NaverTalkAdapter(PlatformAdapter):
    platform = Platform.NAVER_TALK
    path_segment = "naver-talk"

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("event") or "unknown")

    def adapt(self, payload: Mapping[str, Any]) -> List[InboundMessage]:
        body = self._parse(NaverTalkWebhookPayload, payload)

        # open / leave / friend / profile carry no customer message.
        if body.event != "send":
            logger.info("Naver TalkTalk event ignored", extra={"context": {"event": body.event}})
            return []

        text = None
        if body.textContent:
            text = body.textContent.text
        if not text and body.options:
            text = body.options.inquiry

        user_id = body.user.userIdNo
        received_at_ms = self.now_ms()
        return [
            InboundMessage(
                platform=self.platform,
                platform_user_id=user_id,
                platform_message_id=build_event_id(None, user_id, received_at_ms),
                text=(text or "").strip(),
                received_at_ms=received_at_ms,
                sender_display_name=body.user.nickname,
            )
        ]
