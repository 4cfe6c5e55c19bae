"""Scheduler service for periodic outbox drains."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from jobboard.logging import get_logger

logger = get_logger(__name__, component="scheduler")

DRAIN_JOB_ID = "outbox-drain"


class SchedulerService:
    """
    Wraps APScheduler to drain the outbox at the configured poll interval.

    The event bus dispatches most events right after commit; the periodic
    drain picks up whatever it missed (bus handler failures, process
    restarts, events returned to pending for retry).
    """

    def __init__(
        self,
        drain_callable: Callable[[], object],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            drain_callable: Function to call on each scheduled run (e.g. relay.drain_pending)
            interval_seconds: Interval between runs in seconds
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.drain_callable = drain_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # no overlapping drains
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the drain job and start the scheduler. The first drain runs immediately."""
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.drain_callable,
            trigger=trigger,
            id=DRAIN_JOB_ID,
            name="Outbox drain",
            replace_existing=True,
            next_run_time=next_run,
        )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for a running drain to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self):
        """Run a drain synchronously in the current thread and return its result."""
        logger.info("Triggering immediate drain", extra={"event": "scheduler.trigger_now"})
        return self.drain_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(DRAIN_JOB_ID)
        return job.next_run_time if job else None
