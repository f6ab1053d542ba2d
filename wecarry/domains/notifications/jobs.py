"""Notification job arguments and handlers run by the background worker."""

from __future__ import annotations

import logging
from typing import Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from wecarry.core.users.models import ContactPreference, User
from wecarry.core.utils.dates import utcnow
from wecarry.domains.notifications import templates as tpl
from wecarry.domains.notifications.senders import EmailService, Message as OutboundMessage, MobileService
from wecarry.domains.notifications.templates import TemplateCatalog
from wecarry.domains.threads.models import Message, ThreadParticipant
from wecarry.extensions import db
from wecarry.platform.worker import PermanentJobError, Worker

logger = logging.getLogger(__name__)

SEND_NOTIFICATION = "send_notification"
NEW_MESSAGE = "new_message"

Channel = Literal["email", "mobile"]

TITLE_LENGTH = 16
TITLE_SUFFIX = "..."


class SendNotificationArgs(BaseModel):
    kind: Literal["send_notification"] = SEND_NOTIFICATION
    template_key: str = Field(min_length=1)
    recipient_id: int
    channel: Channel
    data: Dict[str, str] = Field(default_factory=dict)
    request_id: Optional[int] = None


class NewMessageArgs(BaseModel):
    kind: Literal["new_message"] = NEW_MESSAGE
    message_id: int
    recipient_id: int
    channel: Channel


def channels_for(user: User) -> List[str]:
    preference = user.contact_preference or ContactPreference.EMAIL.value
    if preference == ContactPreference.TEXT.value:
        return ["mobile"]
    if preference == ContactPreference.BOTH.value:
        return ["email", "mobile"]
    return ["email"]


def truncate(text: str, length: int = TITLE_LENGTH, suffix: str = TITLE_SUFFIX) -> str:
    if len(text) > length:
        return text[: length - len(suffix)] + suffix
    return text


def request_url(ui_url: str, request_uuid: str) -> str:
    return f"{ui_url}/requests/{request_uuid}"


def thread_url(ui_url: str, thread_uuid: str) -> str:
    return f"{ui_url}/messages/{thread_uuid}"


class NotificationJobs:
    """Handlers for the notification jobs; each loads fresh entities."""

    def __init__(
        self,
        email: EmailService,
        mobile: MobileService,
        templates: TemplateCatalog,
        settings: Mapping,
    ) -> None:
        self.email = email
        self.mobile = mobile
        self.templates = templates
        self.app_name = settings.get("APP_NAME", "WeCarry")
        self.ui_url = settings.get("UI_URL", "")
        self.from_address = settings.get("EMAIL_FROM_ADDRESS", "")

    def register(self, worker: Worker) -> None:
        worker.register(SEND_NOTIFICATION, self.send_notification, SendNotificationArgs)
        worker.register(NEW_MESSAGE, self.new_message, NewMessageArgs)

    def _deliver(self, template_key: str, recipient: User, channel: str, data: Mapping[str, str]) -> bool:
        rendered = self.templates.render(template_key, data, recipient.language)
        if channel == "mobile":
            if not recipient.phone_number:
                logger.warning("User %s has no phone number; skipping %s text", recipient.id, template_key)
                return False
            service = self.mobile
            address = recipient.phone_number
        else:
            service = self.email
            address = recipient.email
        service.send(
            OutboundMessage(
                subject=rendered.subject,
                body=rendered.body,
                to_name=recipient.nickname,
                to_address=address,
                from_name=self.app_name,
                from_address=self.from_address,
                template=template_key,
            )
        )
        return True

    def send_notification(self, args: SendNotificationArgs) -> None:
        if not self.templates.has(args.template_key):
            raise PermanentJobError(f"unknown template {args.template_key!r}")
        recipient = db.session.get(User, args.recipient_id)
        if recipient is None:
            raise PermanentJobError(f"recipient {args.recipient_id} not found")
        data = {"receiverNickname": recipient.nickname, **args.data}
        self._deliver(args.template_key, recipient, args.channel, data)

    def new_message(self, args: NewMessageArgs) -> None:
        message = db.session.get(Message, args.message_id)
        if message is None:
            raise PermanentJobError(f"message {args.message_id} not found")

        participant = db.session.execute(
            select(ThreadParticipant).where(
                ThreadParticipant.thread_id == message.thread_id,
                ThreadParticipant.user_id == args.recipient_id,
            )
        ).scalar_one_or_none()
        if participant is None:
            raise PermanentJobError(f"user {args.recipient_id} is not in thread {message.thread_id}")

        if participant.last_viewed_at is not None and participant.last_viewed_at >= message.sent_at:
            logger.debug("User %s already saw message %s", args.recipient_id, message.id)
            return
        notified_at = participant.notified_at(args.channel)
        if notified_at is not None and notified_at > message.sent_at:
            logger.debug("User %s already got a %s notification after message %s", args.recipient_id, args.channel, message.id)
            return

        thread = message.thread
        request = thread.request
        recipient = participant.user
        data = {
            "appName": self.app_name,
            "uiURL": self.ui_url,
            "threadURL": thread_url(self.ui_url, thread.uuid),
            "requestURL": request_url(self.ui_url, request.uuid),
            "requestTitle": truncate(request.title),
            "messageContent": message.content,
            "sentByNickname": message.sent_by.nickname,
            "receiverNickname": recipient.nickname,
        }
        self._deliver(tpl.NEW_MESSAGE, recipient, args.channel, data)

        participant.mark_notified(args.channel, utcnow())
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
