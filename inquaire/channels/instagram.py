from typing import Any, List, Mapping

from inquaire.channels.base import InboundMessage, PlatformAdapter
from inquaire.logging_config import get_logger
from inquaire.models.enums import Platform
from inquaire.schemas.instagram import InstagramWebhookPayload
from inquaire.services.replay_guard import build_event_id

logger = get_logger("channels.instagram")


class InstagramAdapter(PlatformAdapter):
    platform = Platform.INSTAGRAM
    path_segment = "instagram"

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("object") or "instagram")

    def adapt(self, payload: Mapping[str, Any]) -> List[InboundMessage]:
        body = self._parse(InstagramWebhookPayload, payload)
        received_at_ms = self.now_ms()
        messages: List[InboundMessage] = []

        for entry in body.entry:
            for messaging in entry.messaging:
                message = messaging.message
                if message is None:
                    # postbacks, reactions, reads
                    continue
                if message.is_echo:
                    logger.info("Instagram echo message skipped", extra={"context": {"mid": message.mid}})
                    continue
                if message.is_deleted:
                    logger.info("Instagram deleted message skipped", extra={"context": {"mid": message.mid}})
                    continue
                text = (message.text or "").strip()
                if not text:
                    continue

                sender_id = messaging.sender.id
                event_ts = messaging.timestamp or received_at_ms
                messages.append(
                    InboundMessage(
                        platform=self.platform,
                        platform_user_id=sender_id,
                        platform_message_id=build_event_id(message.mid, sender_id, event_ts),
                        text=text,
                        received_at_ms=received_at_ms,
                        event_timestamp_ms=messaging.timestamp,
                    )
                )

        return messages
