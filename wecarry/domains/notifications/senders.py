"""Outbound email and mobile senders."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List

import requests

from wecarry.core.errors import ConfigError

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass(frozen=True)
class Message:
    subject: str
    body: str
    to_name: str
    to_address: str
    from_name: str
    from_address: str
    template: str


class SendError(Exception):
    """Raised when a provider rejects or fails to accept a message."""


class EmailService(ABC):
    @abstractmethod
    def send(self, message: Message) -> None:
        ...


class MobileService(ABC):
    @abstractmethod
    def send(self, message: Message) -> None:
        ...


class _RecordingService:
    """Keeps every message it is given; used in development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Message] = []

    def send(self, message: Message) -> None:
        with self._lock:
            self.sent.append(message)
        logger.info("[%s] %s -> %s: %s", type(self).__name__, message.template, message.to_address, message.subject)

    @property
    def number_sent(self) -> int:
        return len(self.sent)

    def sent_to(self, address: str) -> List[Message]:
        return [message for message in self.sent if message.to_address == address]

    def reset(self) -> None:
        with self._lock:
            self.sent.clear()


class DummyEmailService(_RecordingService, EmailService):
    pass


class DummyMobileService(_RecordingService, MobileService):
    pass


class SendGridEmailService(EmailService):
    """Sends plain-text mail through the SendGrid v3 HTTP API."""

    def __init__(self, api_key: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        if not api_key:
            raise ConfigError("SENDGRID_API_KEY is required when EMAIL_SERVICE=sendgrid")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _payload(self, message: Message) -> dict:
        return {
            "personalizations": [{"to": [{"email": message.to_address, "name": message.to_name}]}],
            "from": {"email": message.from_address, "name": message.from_name},
            "subject": message.subject,
            "content": [{"type": "text/plain", "value": message.body}],
            "categories": [message.template],
        }

    def send(self, message: Message) -> None:
        try:
            resp = self.session.post(
                SENDGRID_SEND_URL,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise SendError(f"sendgrid request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise SendError(f"sendgrid returned {resp.status_code}: {resp.text[:200]}")
        logger.info("Sent %s email to %s", message.template, message.to_address)


def build_email_service(config) -> EmailService:
    name = (config.get("EMAIL_SERVICE") or "dummy").lower()
    if name == "sendgrid":
        return SendGridEmailService(config.get("SENDGRID_API_KEY", ""))
    if name == "dummy":
        return DummyEmailService()
    raise ConfigError(f"unknown EMAIL_SERVICE {name!r}")


def build_mobile_service(config) -> MobileService:
    name = (config.get("MOBILE_SERVICE") or "dummy").lower()
    if name == "dummy":
        return DummyMobileService()
    raise ConfigError(f"unknown MOBILE_SERVICE {name!r}")
