"""Data models for outbox relay runs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from jobboard.dispatch.models import DispatchResult


@dataclass
class EventOutcome:
    """
    Result of relaying one outbox event.

    Attributes:
        event_id: Outbox event id
        claimed: Whether this relay won the claim (False: someone else has it)
        dispatched: Whether the event was marked dispatched
        gave_up: Whether the event was marked failed for good
        attempts: Attempts made so far, including this one
        error: Error recorded on the outbox row, if any
        result: Dispatcher result, if dispatch ran to completion
    """

    event_id: str
    claimed: bool = True
    dispatched: bool = False
    gave_up: bool = False
    attempts: int = 0
    error: Optional[str] = None
    result: Optional[DispatchResult] = None

    @property
    def failed(self) -> bool:
        return self.claimed and not self.dispatched


@dataclass
class DrainResult:
    """
    Aggregate results from one drain of the outbox.

    Attributes:
        started_at: UTC timestamp when the drain began
        finished_at: UTC timestamp when the drain completed
        outcomes: Per-event outcomes, oldest event first
        skipped: Whether the drain was skipped (previous drain still running)
    """

    started_at: datetime
    finished_at: datetime
    outcomes: List[EventOutcome] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.claimed)

    @property
    def dispatched(self) -> int:
        return sum(1 for o in self.outcomes if o.dispatched)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def notifications_sent(self) -> int:
        return sum(o.result.sent for o in self.outcomes if o.result is not None)

    @property
    def had_errors(self) -> bool:
        return self.failed > 0

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
