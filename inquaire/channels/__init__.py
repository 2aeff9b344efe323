"""Platform adapter registry."""

from inquaire.channels.base import InboundMessage, PayloadValidationError, PlatformAdapter
from inquaire.channels.instagram import InstagramAdapter
from inquaire.channels.kakao import KakaoAdapter
from inquaire.channels.line import LineAdapter
from inquaire.channels.naver_talk import NaverTalkAdapter
from inquaire.models.enums import Platform

_REGISTRY: dict[Platform, PlatformAdapter] = {}


def register_adapter(adapter: PlatformAdapter) -> None:
    _REGISTRY[adapter.platform] = adapter


def get_adapter(platform: Platform) -> PlatformAdapter:
    """Return the adapter for ``platform`` or raise ``KeyError``."""
    if platform not in _REGISTRY:
        raise KeyError(f"No webhook adapter for platform '{platform.value}'")
    return _REGISTRY[platform]


register_adapter(KakaoAdapter())
register_adapter(LineAdapter())
register_adapter(NaverTalkAdapter())
register_adapter(InstagramAdapter())

__all__ = [
    "InboundMessage",
    "PayloadValidationError",
    "PlatformAdapter",
    "get_adapter",
    "register_adapter",
]
