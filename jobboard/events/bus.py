"""In-process event bus for post-commit events.

Write services publish after their transaction commits. Handlers run on a
background executor, so the writer never waits for dispatch and a failing
handler is logged without reaching the writer.
"""

import logging
import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, DefaultDict, List, Optional

from jobboard.domain.events import DomainEvent, EventType
from jobboard.logging import get_logger
from jobboard.logging.context import bind_log_context, log_context

logger = get_logger(__name__, component="events")

EventHandler = Callable[[DomainEvent], object]


class EventBus:
    """Publish/subscribe bus keyed by event type.

    Args:
        max_workers: Background threads running handlers
        synchronous: Run handlers inline in publish() (tests and manual runs)
    """

    def __init__(
        self,
        max_workers: int = 2,
        synchronous: bool = False,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.synchronous = synchronous
        self.logger = logger_instance or logger
        self._handlers: DefaultDict[EventType, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="event-bus"
            )

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> List[Future]:
        """Hand ``event`` to every subscribed handler.

        Never raises because of a handler. Returns the scheduled futures
        (empty in synchronous mode).
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, ()))

        self.logger.debug(
            f"Publishing {event.event_type.value} to {len(handlers)} handler(s)",
            extra={"event": "events.published", "event_id": event.event_id},
        )

        futures: List[Future] = []
        for handler in handlers:
            if self._executor is None:
                self._run_handler(handler, event)
                continue
            try:
                futures.append(self._executor.submit(bind_log_context(self._run_handler), handler, event))
            except RuntimeError as e:
                # Executor already shut down; the outbox row stays pending for the relay
                self.logger.warning(
                    f"Event bus is shut down, {event.event_type.value} left for the relay: {e}",
                    extra={"event": "events.publish_after_shutdown", "event_id": event.event_id},
                )
        return futures

    def _run_handler(self, handler: EventHandler, event: DomainEvent) -> None:
        with log_context(event_id=event.event_id):
            try:
                handler(event)
            except Exception as e:
                self.logger.error(
                    f"Handler {getattr(handler, '__qualname__', handler)!s} failed: {e}",
                    exc_info=True,
                    extra={"event": "events.handler_failed", "event_type": event.event_type.value},
                )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self.logger.info("Event bus stopped", extra={"event": "events.bus_stopped"})
