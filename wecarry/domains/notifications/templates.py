"""Notification subjects and bodies keyed by template name and locale.

Placeholders are Jinja2 expressions (``{{ requestTitle }}``); undefined names render
empty. Subjects and bodies are plain text and are not autoescaped.
Non-English locales override a subset of keys and fall back to English.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from jinja2 import BaseLoader, Environment

DEFAULT_LANGUAGE = "en"

NEW_MESSAGE = "new-message"
NEW_REQUEST = "new-request"
NEW_USER_WELCOME = "new-user-welcome"
REQUEST_FROM_OPEN_TO_COMMITTED = "request-from-open-to-committed"
REQUEST_FROM_COMMITTED_TO_ACCEPTED = "request-from-committed-to-accepted"
REQUEST_OFFER_WITHDRAWN = "request-offer-withdrawn"
REQUEST_OFFER_REJECTED = "request-offer-rejected"
REQUEST_FROM_ACCEPTED_TO_OPEN = "request-from-accepted-to-open"
REQUEST_FROM_ACCEPTED_TO_RECEIVED = "request-from-accepted-to-received"
REQUEST_DELIVERED = "request-delivered"
REQUEST_RECEIVED = "request-received"
REQUEST_COMPLETED = "request-completed"
REQUEST_REMOVED = "request-removed"


@dataclass(frozen=True)
class MessageTemplate:
    subject: str
    body: str


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


_EN: Dict[str, MessageTemplate] = {
    NEW_MESSAGE: MessageTemplate(
        "{{ appName }}: new message from {{ sentByNickname }}",
        "{{ sentByNickname }} wrote about \"{{ requestTitle }}\":\n\n{{ messageContent }}\n\nReply at {{ threadURL }}",
    ),
    NEW_REQUEST: MessageTemplate(
        "{{ appName }}: new request \"{{ requestTitle }}\"",
        "{{ receiverNickname }}, there is a new request for an item from your location.\n\n"
        "{{ requestDescription }}\n\nSee {{ requestURL }}",
    ),
    NEW_USER_WELCOME: MessageTemplate(
        "Welcome to {{ appName }}",
        "Hi {{ receiverNickname }}, welcome to {{ appName }}! Start at {{ uiURL }}",
    ),
    REQUEST_FROM_OPEN_TO_COMMITTED: MessageTemplate(
        "{{ appName }}: {{ providerNickname }} offered to fulfill \"{{ requestTitle }}\"",
        "{{ providerNickname }} has offered to fulfill your request. Accept or decline at {{ requestURL }}",
    ),
    REQUEST_FROM_COMMITTED_TO_ACCEPTED: MessageTemplate(
        "{{ appName }}: your offer for \"{{ requestTitle }}\" was accepted",
        "{{ receiverNickname }}, the requester has accepted your offer. Details at {{ requestURL }}",
    ),
    REQUEST_OFFER_WITHDRAWN: MessageTemplate(
        "{{ appName }}: offer for \"{{ requestTitle }}\" withdrawn",
        "{{ providerNickname }} has withdrawn their offer. Your request is open again: {{ requestURL }}",
    ),
    REQUEST_OFFER_REJECTED: MessageTemplate(
        "{{ appName }}: offer for \"{{ requestTitle }}\" declined",
        "The requester has declined your offer for \"{{ requestTitle }}\". {{ requestURL }}",
    ),
    REQUEST_FROM_ACCEPTED_TO_OPEN: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" was reopened",
        "The requester no longer needs you to deliver \"{{ requestTitle }}\". {{ requestURL }}",
    ),
    REQUEST_FROM_ACCEPTED_TO_RECEIVED: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" was received",
        "The requester has marked \"{{ requestTitle }}\" as received. Thank you! {{ requestURL }}",
    ),
    REQUEST_DELIVERED: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" was delivered",
        "{{ providerNickname }} says your item has been delivered. Please confirm at {{ requestURL }}",
    ),
    REQUEST_RECEIVED: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" was received",
        "{{ receiverNickname }} has received the item. {{ requestURL }}",
    ),
    REQUEST_COMPLETED: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" is complete",
        "The requester has completed \"{{ requestTitle }}\". Thank you for helping! {{ requestURL }}",
    ),
    REQUEST_REMOVED: MessageTemplate(
        "{{ appName }}: \"{{ requestTitle }}\" was removed",
        "The requester has removed \"{{ requestTitle }}\"; no delivery is needed.",
    ),
}

_FR: Dict[str, MessageTemplate] = {
    NEW_MESSAGE: MessageTemplate(
        "{{ appName }} : nouveau message de {{ sentByNickname }}",
        "{{ sentByNickname }} a écrit au sujet de \"{{ requestTitle }}\" :\n\n{{ messageContent }}\n\nRépondre : {{ threadURL }}",
    ),
    NEW_USER_WELCOME: MessageTemplate(
        "Bienvenue sur {{ appName }}",
        "Bonjour {{ receiverNickname }}, bienvenue sur {{ appName }} ! Commencez ici : {{ uiURL }}",
    ),
    REQUEST_FROM_OPEN_TO_COMMITTED: MessageTemplate(
        "{{ appName }} : {{ providerNickname }} propose d'apporter \"{{ requestTitle }}\"",
        "{{ providerNickname }} propose de répondre à votre demande. Acceptez ou refusez : {{ requestURL }}",
    ),
    REQUEST_FROM_COMMITTED_TO_ACCEPTED: MessageTemplate(
        "{{ appName }} : votre offre pour \"{{ requestTitle }}\" est acceptée",
        "{{ receiverNickname }}, le demandeur a accepté votre offre. Détails : {{ requestURL }}",
    ),
}

_ES: Dict[str, MessageTemplate] = {
    NEW_MESSAGE: MessageTemplate(
        "{{ appName }}: nuevo mensaje de {{ sentByNickname }}",
        "{{ sentByNickname }} escribió sobre \"{{ requestTitle }}\":\n\n{{ messageContent }}\n\nResponder: {{ threadURL }}",
    ),
    NEW_USER_WELCOME: MessageTemplate(
        "Bienvenido a {{ appName }}",
        "Hola {{ receiverNickname }}, ¡bienvenido a {{ appName }}! Empieza en {{ uiURL }}",
    ),
    REQUEST_FROM_OPEN_TO_COMMITTED: MessageTemplate(
        "{{ appName }}: {{ providerNickname }} ofreció llevar \"{{ requestTitle }}\"",
        "{{ providerNickname }} ofreció cumplir su solicitud. Acepte o rechace en {{ requestURL }}",
    ),
}

TEMPLATES: Dict[str, Dict[str, MessageTemplate]] = {
    "en": _EN,
    "fr": _FR,
    "es": _ES,
}


_env = Environment(loader=BaseLoader(), autoescape=False)


def _render(text: str, data: Mapping[str, object]) -> str:
    return _env.from_string(text).render(**data)


class TemplateCatalog:
    """Read-only lookup over the template tables."""

    def __init__(self, templates: Optional[Mapping[str, Mapping[str, MessageTemplate]]] = None) -> None:
        self._templates = templates if templates is not None else TEMPLATES

    @property
    def keys(self) -> frozenset:
        return frozenset(self._templates.get(DEFAULT_LANGUAGE, {}))

    def has(self, key: str) -> bool:
        return key in self.keys

    def missing(self, keys: Iterable[str]) -> list[str]:
        return sorted(key for key in keys if not self.has(key))

    def get(self, key: str, language: Optional[str] = None) -> MessageTemplate:
        language = (language or DEFAULT_LANGUAGE).split("-")[0].lower()
        localized = self._templates.get(language, {})
        if key in localized:
            return localized[key]
        return self._templates[DEFAULT_LANGUAGE][key]

    def render(self, key: str, data: Mapping[str, object], language: Optional[str] = None) -> RenderedMessage:
        template = self.get(key, language)
        return RenderedMessage(subject=_render(template.subject, data), body=_render(template.body, data))
