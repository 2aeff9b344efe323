"""Operator alerts delivered to a Telegram chat."""

from typing import Optional

import httpx

from inquaire.config import Settings, get_settings
from inquaire.logging_config import get_logger

logger = get_logger("alert_service")


def send_alert(
    level: str,
    message: str,
    context: Optional[dict] = None,
    *,
    settings: Optional[Settings] = None,
) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict
        settings: Settings carrying alert_bot_token / alert_chat_id

    Returns:
        True if sent successfully
    """
    settings = settings or get_settings()
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}
    text = f"{emoji.get(level, '📢')} *{level}*\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={"chat_id": settings.alert_chat_id, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None, *, settings: Optional[Settings] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return send_alert("ERROR", message, context, settings=settings)


def alert_dead_job(job: dict, error: str, *, settings: Optional[Settings] = None) -> bool:
    return alert_error(
        "Analysis job exhausted its attempts",
        {
            "job_id": job.get("id"),
            "inquiry_id": job.get("inquiry_id"),
            "business_id": job.get("business_id"),
            "attempts": job.get("attempt"),
            "error": error[:300],
        },
        settings=settings,
    )
