"""Fire-and-forget chat notifications (Slack incoming webhooks)."""

from __future__ import annotations

import logging
from typing import Protocol

import requests

logger = logging.getLogger(__name__)


class ChatNotifier(Protocol):
    def notify(self, text: str) -> bool: ...


class NullNotifier:
    """Used when no chat destination is configured."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    def notify(self, text: str) -> bool:
        self.sent.append(text)
        logger.debug("chat notification (not delivered): %s", text)
        return False


class SlackWebhookNotifier:
    def __init__(
        self,
        webhook_url: str,
        channel: str = "",
        session: requests.Session | None = None,
        timeout_s: float = 10,
    ) -> None:
        self.webhook_url = webhook_url
        self.channel = channel
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def notify(self, text: str) -> bool:
        payload: dict[str, str] = {"text": text}
        if self.channel:
            payload["channel"] = self.channel
        try:
            response = self.session.post(self.webhook_url, json=payload, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("chat notification failed: %s", exc)
            return False
        return True


def build_notifier(webhook_url: str, channel: str = "") -> ChatNotifier:
    if webhook_url:
        return SlackWebhookNotifier(webhook_url=webhook_url, channel=channel)
    return NullNotifier()
