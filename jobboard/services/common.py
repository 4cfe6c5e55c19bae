"""Helpers shared by the write services."""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from jobboard.domain.events import DomainEvent
from jobboard.domain.exceptions import ValidationError
from jobboard.events.bus import EventBus


def publish_committed(bus: Optional[EventBus], event: Optional[DomainEvent], logger: logging.LoggerAdapter) -> None:
    """Hand a committed event to the bus.

    Without a bus the outbox row stays pending and the relay's next drain
    picks it up.
    """
    if event is None:
        return
    if bus is None:
        logger.debug(
            f"No event bus, {event.event_type.value} left for the relay",
            extra={"event": "events.deferred", "event_id": event.event_id},
        )
        return
    bus.publish(event)


def as_validation_error(e: PydanticValidationError, what: str) -> ValidationError:
    """Flatten a pydantic error into the domain ValidationError."""
    problems = "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc']) or what}: {err['msg']}" for err in e.errors()
    )
    return ValidationError(f"Invalid {what}: {problems}")
