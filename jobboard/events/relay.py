"""Outbox relay: moves committed events from the outbox to the dispatcher."""

import logging
import threading
from contextlib import AbstractContextManager
from typing import Callable, Optional

from jobboard.config.models import DispatchConfig
from jobboard.dispatch.dispatcher import AlertDispatcher
from jobboard.domain.events import DomainEvent, EventType
from jobboard.logging import get_logger
from jobboard.logging.context import log_context
from jobboard.persistence import get_session
from jobboard.persistence.repositories import OutboxRepository
from jobboard.utils.timestamps import utc_now

from .bus import EventBus
from .models import DrainResult, EventOutcome

logger = get_logger(__name__, component="relay")


class OutboxRelay:
    """
    Claims outbox events and runs the dispatcher for them.

    Both the event bus (right after commit) and the scheduler (periodic
    drain) go through process_event(), whose atomic claim guarantees that an
    event is dispatched by one of them only. An event whose dispatch raised
    or reported failed subscriptions goes back to pending; the dedupe ledger
    keeps the retry from notifying anyone twice. After ``max_event_attempts``
    the event is marked failed.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        session_factory: Callable[[], AbstractContextManager] = get_session,
        config: Optional[DispatchConfig] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.config = config or DispatchConfig()
        self.logger = logger_instance or logger
        self._drain_lock = threading.Lock()

    def attach(self, bus: EventBus) -> None:
        """Subscribe to every event type the dispatcher serves."""
        for event_type in EventType:
            bus.subscribe(event_type, self.handle)

    def handle(self, event: DomainEvent) -> EventOutcome:
        """Event bus handler."""
        return self.process_event(event.event_id)

    def process_event(self, event_id: str) -> EventOutcome:
        """Claim, dispatch and settle one outbox event.

        Returns an outcome with ``claimed=False`` if the event was not pending
        (already dispatched, failed for good, or being processed elsewhere).

        Raises:
            PersistenceError: If the outbox itself cannot be read or updated
        """
        with log_context(event_id=event_id):
            with self.session_factory() as session:
                outbox = OutboxRepository(session)
                record = outbox.claim(event_id)
                current = outbox.get(event_id) if record is None else None

            if record is None:
                status = current.status.value if current is not None else "missing"
                self.logger.debug(
                    f"Event is {status}, nothing to do",
                    extra={"event": "relay.not_claimed", "status": status},
                )
                return EventOutcome(event_id=event_id, claimed=False)

            outcome = EventOutcome(event_id=event_id, attempts=record.attempts)

            try:
                outcome.result = self.dispatcher.dispatch(record.to_event())
            except Exception as e:
                self.logger.error(
                    f"Dispatch raised for event {event_id}: {e}",
                    exc_info=True,
                    extra={"event": "relay.dispatch_error", "attempt": record.attempts},
                )
                outcome.error = f"{type(e).__name__}: {e}"
            else:
                if outcome.result.has_failures:
                    outcome.error = "; ".join(
                        f"{f.stage}:{f.alert_id}: {f.error}" for f in outcome.result.failures
                    )

            with self.session_factory() as session:
                outbox = OutboxRepository(session)
                if outcome.error is None:
                    outbox.mark_dispatched(event_id)
                    outcome.dispatched = True
                else:
                    outcome.gave_up = record.attempts >= self.config.max_event_attempts
                    outbox.mark_failed(event_id, outcome.error, give_up=outcome.gave_up)

            if outcome.dispatched:
                self.logger.info(
                    "Event dispatched",
                    extra={"event": "relay.event_dispatched", "attempt": record.attempts},
                )
            elif outcome.gave_up:
                self.logger.error(
                    f"Giving up on event {event_id} after {record.attempts} attempts",
                    extra={"event": "relay.event_failed", "attempt": record.attempts},
                )
            else:
                self.logger.warning(
                    f"Event {event_id} returned to pending (attempt "
                    f"{record.attempts}/{self.config.max_event_attempts})",
                    extra={"event": "relay.event_retry", "attempt": record.attempts},
                )

            return outcome

    def drain_pending(self) -> DrainResult:
        """Process up to ``batch_size`` pending events, oldest first.

        Overlapping drains are skipped rather than queued.
        """
        started_at = utc_now()

        if not self._drain_lock.acquire(blocking=False):
            self.logger.warning(
                "Drain skipped: previous drain still in progress",
                extra={"event": "relay.drain.skipped", "reason": "lock_held"},
            )
            return DrainResult(started_at=started_at, finished_at=utc_now(), skipped=True)

        try:
            with self.session_factory() as session:
                pending = OutboxRepository(session).list_pending(self.config.batch_size)

            self.logger.info(
                f"Draining {len(pending)} pending event(s)",
                extra={"event": "relay.drain.started", "pending_count": len(pending)},
            )

            result = DrainResult(started_at=started_at, finished_at=started_at)
            for record in pending:
                result.outcomes.append(self.process_event(record.event_id))

            result.finished_at = utc_now()
            self.logger.info(
                f"Drain completed: {result.dispatched} dispatched, {result.failed} failed, "
                f"{result.notifications_sent} notification(s) sent",
                extra={
                    "event": "relay.drain.completed",
                    "processed": result.processed,
                    "dispatched": result.dispatched,
                    "failed": result.failed,
                    "notifications_sent": result.notifications_sent,
                    "duration_seconds": round(result.duration_seconds, 3),
                },
            )
            return result
        finally:
            self._drain_lock.release()

    def recover(self) -> int:
        """Requeue events a previous process left in processing. Call before starting."""
        with self.session_factory() as session:
            count = OutboxRepository(session).requeue_processing()
        if count:
            self.logger.warning(
                f"Requeued {count} event(s) left in processing",
                extra={"event": "relay.recovered", "count": count},
            )
        return count
