from typing import Any, List, Mapping

from inquaire.channels.base import InboundMessage, PlatformAdapter
from inquaire.logging_config import get_logger
from inquaire.models.enums import Platform
from inquaire.schemas.line import LineWebhookPayload
from inquaire.services.replay_guard import build_event_id

logger = get_logger("channels.line")


class LineAdapter(PlatformAdapter):
    platform = Platform.LINE
    path_segment = "line"

    def event_type(self, payload: Mapping[str, Any]) -> str:
        events = payload.get("events") or []
        types = sorted({str(event.get("type")) for event in events if isinstance(event, dict)})
        return ",".join(types) or "empty"

    def adapt(self, payload: Mapping[str, Any]) -> List[InboundMessage]:
        body = self._parse(LineWebhookPayload, payload)
        received_at_ms = self.now_ms()
        messages: List[InboundMessage] = []

        for event in body.events:
            if event.type != "message" or not event.message or event.message.type != "text":
                continue
            user_id = event.source.userId if event.source else None
            if not user_id:
                logger.info("LINE event without userId skipped", extra={"context": {"event_type": event.type}})
                continue
            text = (event.message.text or "").strip()
            if not text:
                logger.warning("LINE text event without text skipped", extra={"context": {"user_id": user_id}})
                continue

            event_ts = event.timestamp or received_at_ms
            messages.append(
                InboundMessage(
                    platform=self.platform,
                    platform_user_id=user_id,
                    platform_message_id=build_event_id(event.message.id, user_id, event_ts),
                    text=text,
                    received_at_ms=received_at_ms,
                    event_timestamp_ms=event.timestamp,
                    reply_token=event.replyToken,
                )
            )

        return messages
