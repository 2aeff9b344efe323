"""Webhook authentication: HMAC signatures over the raw body and CIDR origin checks."""

import base64
import hashlib
import hmac
import ipaddress
from typing import Mapping, Optional

from inquaire.config import Settings
from inquaire.logging_config import get_logger
from inquaire.models.enums import Platform

logger = get_logger("security")

# platform -> (header, digest encoding)
SIGNATURE_SCHEMES = {
    Platform.KAKAO: ("x-kakao-signature", "base64"),
    Platform.LINE: ("x-line-signature", "base64"),
    Platform.NAVER_TALK: ("x-naver-signature", "base64"),
    Platform.INSTAGRAM: ("x-hub-signature-256", "sha256-hex"),
}


class SecurityRejection(Exception):
    def __init__(
        self,
        message: str,
        *,
        platform: Optional[str] = None,
        client_ip: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self.message = message
        self.platform = platform
        self.client_ip = client_ip
        self.url = url
        super().__init__(message)


def compute_signature(raw_body: bytes, secret: str, encoding: str = "hex") -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    if encoding == "base64":
        return base64.b64encode(digest).decode("ascii")
    if encoding == "sha256-hex":
        return f"sha256={digest.hex()}"
    return digest.hex()


def verify_signature(
    raw_body: bytes,
    provided_signature: Optional[str],
    platform_secret: Optional[str],
    encoding: str = "hex",
) -> bool:
    """Check an HMAC-SHA256 signature computed over the unparsed request body.

    A missing secret means signatures are not configured for the platform and
    the check passes; origin allow-listing has to carry the request instead.
    A configured secret with no signature header fails.
    """
    if not platform_secret:
        return True
    if not provided_signature:
        return False
    expected = compute_signature(raw_body, platform_secret, encoding)
    return hmac.compare_digest(expected.encode("utf-8"), provided_signature.strip().encode("utf-8"))


def ipv4_to_int(value: str) -> Optional[int]:
    try:
        return int(ipaddress.IPv4Address(value.strip()))
    except (ipaddress.AddressValueError, ValueError):
        return None


def is_ip_in_cidr(ip: str, cidr: str) -> bool:
    base, _, prefix = cidr.partition("/")
    ip_int = ipv4_to_int(ip)
    base_int = ipv4_to_int(base)
    if ip_int is None or base_int is None:
        return False
    bits = int(prefix) if prefix else 32
    if bits < 0 or bits > 32:
        return False
    mask = ~((1 << (32 - bits)) - 1) & 0xFFFFFFFF
    return (ip_int & mask) == (base_int & mask)


def extract_client_ip(headers: Mapping[str, str], peer_host: Optional[str], *, trust_proxy_headers: bool = True) -> str:
    if trust_proxy_headers:
        forwarded_for = headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
        real_ip = headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()
    return peer_host or ""


class SecurityValidator:
    def __init__(self, settings: Settings):
        self.settings = settings

    def is_origin_allowed(self, client_ip: str, platform: Platform) -> bool:
        ranges = self.settings.webhook_allowed_cidrs.get(platform.value, [])
        if ipv4_to_int(client_ip or "") is None:
            logger.warning(
                "Webhook origin is not a valid IPv4 address",
                extra={"context": {"client_ip": client_ip, "platform": platform.value}},
            )
            return False
        return any(is_ip_in_cidr(client_ip, cidr) for cidr in ranges)

    def client_ip(self, headers: Mapping[str, str], peer_host: Optional[str]) -> str:
        return extract_client_ip(headers, peer_host, trust_proxy_headers=self.settings.trust_proxy_headers)

    def resolve_secret(self, platform: Platform, channel_secret: Optional[str]) -> Optional[str]:
        secret = (channel_secret or "").strip()
        if secret:
            return secret
        return self.settings.platform_secret(platform.value)

    def validate_origin(self, platform: Platform, *, client_ip: str, url: str) -> bool:
        """Reject foreign origins. Returns whether the allow-list was applied."""
        if not self.settings.allowlist_active:
            return False
        if not self.is_origin_allowed(client_ip, platform):
            self._reject("Webhook origin not allowed", platform, client_ip, url)
        return True

    def validate_signature(
        self,
        platform: Platform,
        *,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str,
        url: str,
        secret: Optional[str],
        origin_checked: bool,
    ) -> None:
        if not secret:
            if not origin_checked and not self.settings.is_development:
                self._reject("Webhook authentication not configured", platform, client_ip, url)
            logger.info(
                "Webhook signature not configured, relying on origin allow-list",
                extra={"context": {"platform": platform.value, "origin_checked": origin_checked}},
            )
            return

        header, encoding = SIGNATURE_SCHEMES[platform]
        if not verify_signature(raw_body, headers.get(header), secret, encoding):
            self._reject("Invalid webhook signature", platform, client_ip, url)

    def validate_request(
        self,
        platform: Platform,
        *,
        raw_body: bytes,
        headers: Mapping[str, str],
        client_ip: str,
        url: str,
        secret: Optional[str],
    ) -> None:
        """Raise SecurityRejection unless the request passes origin and signature checks."""
        origin_checked = self.validate_origin(platform, client_ip=client_ip, url=url)
        self.validate_signature(
            platform,
            raw_body=raw_body,
            headers=headers,
            client_ip=client_ip,
            url=url,
            secret=secret,
            origin_checked=origin_checked,
        )

    def _reject(self, message: str, platform: Platform, client_ip: str, url: str) -> None:
        logger.warning(
            message,
            extra={"context": {"platform": platform.value, "client_ip": client_ip, "url": url}},
        )
        raise SecurityRejection(message, platform=platform.value, client_ip=client_ip, url=url)
