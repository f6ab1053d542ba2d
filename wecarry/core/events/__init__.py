from wecarry.core.events.event_bus import EventBus
from wecarry.core.events.event_models import (
    Event,
    RequestCreated,
    RequestStatusChanged,
    ThreadMessageAdded,
    UserCreated,
)

__all__ = [
    "EventBus",
    "Event",
    "RequestCreated",
    "RequestStatusChanged",
    "ThreadMessageAdded",
    "UserCreated",
]
