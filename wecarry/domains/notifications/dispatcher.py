"""Turns domain events into notification jobs.

The dispatcher only computes recipients and enqueues; rendering and sending
happen in the worker (see ``jobs.py``). Within one transaction a recipient gets
a given template for a given request at most once.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy import select

from wecarry.core.errors import ConfigError
from wecarry.core.events.event_models import (
    EVENT_KINDS,
    Event,
    RequestCreated,
    RequestStatusChanged,
    ThreadMessageAdded,
    UserCreated,
)
from wecarry.core.users.models import User
from wecarry.domains.notifications import templates as tpl
from wecarry.domains.notifications.jobs import (
    NEW_MESSAGE,
    SEND_NOTIFICATION,
    channels_for,
    request_url,
    truncate,
)
from wecarry.domains.notifications.templates import TemplateCatalog
from wecarry.domains.requests.lifecycle import Recipient, find_transition, transition_templates
from wecarry.domains.requests.models import Request
from wecarry.domains.threads.models import Thread
from wecarry.extensions import db
from wecarry.platform.worker import Job, Worker

logger = logging.getLogger(__name__)

DEFAULT_NEW_MESSAGE_DELAY = 60.0

DedupKey = Tuple[int, str, Optional[int]]


def required_templates() -> frozenset:
    return transition_templates() | {tpl.NEW_MESSAGE, tpl.NEW_REQUEST, tpl.NEW_USER_WELCOME}


class NotificationDispatcher:
    event_kinds = EVENT_KINDS

    def __init__(self, worker: Worker, templates: TemplateCatalog, settings: Mapping) -> None:
        missing = templates.missing(required_templates())
        if missing:
            raise ConfigError(f"notification templates missing: {', '.join(missing)}")
        self.worker = worker
        self.templates = templates
        self.app_name = settings.get("APP_NAME", "WeCarry")
        self.ui_url = settings.get("UI_URL", "")
        self.new_message_delay = float(settings.get("NEW_MESSAGE_NOTIFICATION_DELAY", DEFAULT_NEW_MESSAGE_DELAY))
        self._local = threading.local()
        self._handlers: Dict[type, Callable[[Event], List[Job]]] = {
            UserCreated: self._on_user_created,
            RequestCreated: self._on_request_created,
            RequestStatusChanged: self._on_status_changed,
            ThreadMessageAdded: self._on_message_added,
        }

    def handle(self, event: Event) -> List[Job]:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("No notification handler for event %s", event.kind)
            return []
        jobs = handler(event)
        logger.debug("Event %s produced %s notification job(s)", event.kind, len(jobs))
        return jobs

    # ---- dedup ------------------------------------------------------------------

    def _first_time(self, transaction_id: str, key: DedupKey) -> bool:
        if getattr(self._local, "transaction_id", None) != transaction_id:
            self._local.transaction_id = transaction_id
            self._local.seen = set()
        seen: Set[DedupKey] = self._local.seen
        if key in seen:
            logger.debug("Skipping duplicate notification %s in transaction %s", key, transaction_id)
            return False
        seen.add(key)
        return True

    # ---- helpers ----------------------------------------------------------------

    def _request_data(self, request: Request, provider: Optional[User]) -> Dict[str, str]:
        return {
            "uiURL": self.ui_url,
            "appName": self.app_name,
            "requestURL": request_url(self.ui_url, request.uuid),
            "requestTitle": truncate(request.title),
            "requestDescription": request.description or "",
            "creatorNickname": request.created_by.nickname,
            "providerNickname": provider.nickname if provider else "",
        }

    def _notify(
        self,
        transaction_id: str,
        template_key: str,
        recipient: User,
        data: Dict[str, str],
        request_id: Optional[int] = None,
    ) -> List[Job]:
        if not self._first_time(transaction_id, (recipient.id, template_key, request_id)):
            return []
        return [
            self.worker.enqueue(
                SEND_NOTIFICATION,
                {
                    "template_key": template_key,
                    "recipient_id": recipient.id,
                    "channel": channel,
                    "data": data,
                    "request_id": request_id,
                },
            )
            for channel in channels_for(recipient)
        ]

    # ---- handlers ---------------------------------------------------------------

    def _on_user_created(self, event: UserCreated) -> List[Job]:
        user = db.session.get(User, event.user_id)
        if user is None:
            logger.warning("User %s from %s no longer exists", event.user_id, event.kind)
            return []
        data = {"uiURL": self.ui_url, "appName": self.app_name}
        return self._notify(event.transaction_id, tpl.NEW_USER_WELCOME, user, data)

    def _on_request_created(self, event: RequestCreated) -> List[Job]:
        request = db.session.get(Request, event.request_id)
        if request is None:
            logger.warning("Request %s from %s no longer exists", event.request_id, event.kind)
            return []
        data = self._request_data(request, None)
        recipients = db.session.execute(
            select(User).where(User.notify_on_new_requests.is_(True), User.id != request.created_by_id)
        ).scalars()
        jobs: List[Job] = []
        for user in recipients:
            jobs.extend(self._notify(event.transaction_id, tpl.NEW_REQUEST, user, data, request.id))
        return jobs

    def _on_status_changed(self, event: RequestStatusChanged) -> List[Job]:
        edge = find_transition(event.old_status, event.new_status)
        if edge is None:
            logger.warning("No transition %s -> %s to notify about", event.old_status, event.new_status)
            return []
        request = db.session.get(Request, event.request_id)
        if request is None:
            logger.warning("Request %s from %s no longer exists", event.request_id, event.kind)
            return []

        template_key = edge.template
        if edge.recipient is Recipient.OTHER_PARTY:
            if event.old_provider_id is not None and event.actor_id == event.old_provider_id:
                template_key = edge.provider_template or edge.template
                recipient_id = request.created_by_id
            else:
                recipient_id = event.old_provider_id
        elif edge.recipient is Recipient.CREATOR:
            recipient_id = request.created_by_id
        elif edge.recipient is Recipient.PROVIDER:
            recipient_id = event.provider_id
        else:
            recipient_id = event.old_provider_id

        if recipient_id is None:
            return []
        recipient = db.session.get(User, recipient_id)
        if recipient is None:
            logger.warning("Recipient %s for %s no longer exists", recipient_id, template_key)
            return []

        provider_id = event.provider_id or event.old_provider_id
        provider = db.session.get(User, provider_id) if provider_id is not None else None
        data = self._request_data(request, provider)
        return self._notify(event.transaction_id, template_key, recipient, data, request.id)

    def _on_message_added(self, event: ThreadMessageAdded) -> List[Job]:
        thread = db.session.get(Thread, event.thread_id)
        if thread is None:
            logger.warning("Thread %s from %s no longer exists", event.thread_id, event.kind)
            return []
        jobs: List[Job] = []
        for participant in thread.participants:
            if participant.user_id == event.sender_id:
                continue
            key = (participant.user_id, tpl.NEW_MESSAGE, event.request_id)
            if not self._first_time(event.transaction_id, key):
                continue
            for channel in channels_for(participant.user):
                jobs.append(
                    self.worker.enqueue(
                        NEW_MESSAGE,
                        {"message_id": event.message_id, "recipient_id": participant.user_id, "channel": channel},
                        delay=self.new_message_delay,
                    )
                )
        return jobs
