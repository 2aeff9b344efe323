"""Base abstractions for platform webhook adapters."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from inquaire.models.enums import Platform

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class InboundMessage:
    platform: Platform
    platform_user_id: str
    platform_message_id: str
    text: str
    received_at_ms: int
    sender_display_name: Optional[str] = None
    event_timestamp_ms: Optional[int] = None
    reply_token: Optional[str] = None


class PayloadValidationError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PlatformAdapter(ABC):
    """Turns one platform's webhook payload into canonical inbound messages."""

    platform: Platform
    #: Path segment used in webhook routes.
    path_segment: str

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    @abstractmethod
    def adapt(self, payload: Mapping[str, Any]) -> List[InboundMessage]:
        """Return text messages in payload order; unsupported events yield nothing."""

    def event_type(self, payload: Mapping[str, Any]) -> str:
        """Label recorded on the webhook audit row."""
        return "message"

    def _parse(self, model: Type[ModelT], payload: Mapping[str, Any]) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise PayloadValidationError(f"Invalid {self.platform.value} payload: {exc.error_count()} error(s)") from exc
