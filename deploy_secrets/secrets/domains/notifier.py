"""Webhook notifications (Slack-compatible payloads)."""
import logging
import os
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

GOOD = "good"
WARNING = "warning"
DANGER = "danger"


class Notifier:
    """Posts JSON payloads to a webhook. Delivery failures are logged, never retried."""

    def __init__(self, webhook_url: Optional[str], timeout: int = 10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Notifier":
        alerts = config.get("alerts") or {}
        webhook_env = alerts.get("webhook_env", "SLACK_WEBHOOK")
        return cls(os.getenv(webhook_env), timeout=alerts.get("timeout", 10))

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def send(self, payload: Dict[str, Any]) -> bool:
        """Post ``payload``; returns False when unconfigured or delivery fails."""
        if not self.webhook_url:
            logger.warning("Alert webhook not configured; notification not sent")
            return False
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException:
            logger.exception("Webhook delivery failed")
            return False
        return True


def build_message(text: str, color: str, fields: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Slack attachment message with short title/value fields."""
    return {
        "text": text,
        "attachments": [
            {
                "color": color,
                "fields": [
                    {"title": field["title"], "value": str(field["value"]), "short": field.get("short", True)}
                    for field in fields
                ],
            }
        ],
    }
