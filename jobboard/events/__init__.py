"""Post-commit event delivery: in-process bus and transactional outbox relay."""

from .bus import EventBus
from .models import DrainResult, EventOutcome
from .relay import OutboxRelay

__all__ = [
    "EventBus",
    "OutboxRelay",
    "DrainResult",
    "EventOutcome",
]
