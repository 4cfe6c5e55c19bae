"""Scheduling module for periodic outbox drains."""

from .service import SchedulerService

__all__ = [
    "SchedulerService",
]
