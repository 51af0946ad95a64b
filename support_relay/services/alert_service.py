"""Alert service for posting operational notifications to a chat webhook."""

from typing import Optional

import httpx

from support_relay.config import settings
from support_relay.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_TIMEOUT_SECONDS = 5


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Post an alert to the configured webhook.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    webhook_url = settings.alert_webhook_url
    if not webhook_url:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    text = f"[{level}] support-relay: {message}"
    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n{context_str}"

    try:
        with httpx.Client(timeout=ALERT_TIMEOUT_SECONDS) as client:
            response = client.post(webhook_url, json={"text": text, "level": level})
            return 200 <= response.status_code < 300
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return send_alert("ERROR", message, context)
