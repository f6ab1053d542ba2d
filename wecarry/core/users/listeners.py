"""Event listeners owned by the users module."""

from __future__ import annotations

import logging

from wecarry.core.events.event_models import UserCreated

logger = logging.getLogger(__name__)


class UserCreatedLogger:
    event_kinds = (UserCreated.kind,)

    def handle(self, event: UserCreated) -> None:
        logger.info("User created: %s", event.user_id)
