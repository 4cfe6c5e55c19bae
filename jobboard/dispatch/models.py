"""Result types for alert dispatch."""

from dataclasses import dataclass, field
from typing import List, Optional

from jobboard.domain.models import AlertKind


@dataclass
class DispatchFailure:
    """One subscription that could not be served.

    Attributes:
        alert_id: Subscription id
        stage: Where it failed (criteria, evaluation, reserve, in_flight, send, timeout)
        error: Error description
    """

    alert_id: Optional[str]
    stage: str
    error: str


@dataclass
class DispatchResult:
    """Outcome of dispatching one event.

    Counters:
        evaluated: Subscriptions whose criteria were evaluated
        matched: Subscriptions whose criteria matched the subject
        sent: Notifications confirmed sent
        skipped: Matches not sent (already delivered, no contact address, below score)
        failed: Subscriptions that failed to evaluate or send
    """

    event_id: str
    subject_id: str
    kind: AlertKind
    evaluated: int = 0
    matched: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[DispatchFailure] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    def record_failure(self, alert_id: Optional[str], stage: str, error: str) -> None:
        self.failed += 1
        self.failures.append(DispatchFailure(alert_id=alert_id, stage=stage, error=error))

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def as_log_fields(self) -> dict:
        return {
            "kind": self.kind.value,
            "evaluated": self.evaluated,
            "matched": self.matched,
            "sent": self.sent,
            "skipped": self.skipped,
            "failed": self.failed,
        }
