"""Alert dispatcher: fans a committed write out to matching alert owners.

Dispatch of one event runs in three phases:
1. Plan (dispatching thread, one session): load the subject and the active
   instant subscriptions, evaluate criteria, drop subscriptions already in
   the delivery ledger, resolve contact addresses and score resume alerts.
2. Send (thread pool): each planned send first reserves its ledger row, then
   calls NotificationGateway.send() on a worker. The send timeout counts from
   the moment the worker starts the send.
3. Record: a confirmed send bumps the alert's statistics and marks its ledger
   row delivered; a failed send releases the row. A send that outlives its
   timeout keeps its reservation and is settled by a done-callback when it
   finally returns, so a retried event never calls the gateway for it again.

A failure in one subscription is logged and counted; it never stops the
others and never propagates to the write that published the event.
"""

import logging
import math
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from contextlib import AbstractContextManager
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from jobboard.config.models import DispatchConfig
from jobboard.domain.events import DeliveryStatus, DomainEvent
from jobboard.domain.models import (
    AlertFrequency,
    AlertKind,
    AlertSubscription,
    CandidateProfile,
    JobPost,
    JobStatus,
)
from jobboard.logging import get_logger
from jobboard.logging.context import bind_log_context, log_context
from jobboard.matching.engine import CriteriaMatcher
from jobboard.matching.scoring import MatchScorer
from jobboard.matching.utils import build_rationale_dict
from jobboard.notifications.gateway import NotificationGateway
from jobboard.notifications.models import NotificationRequest, TemplateKind
from jobboard.notifications.payloads import build_job_alert_metadata, build_resume_alert_metadata
from jobboard.persistence import get_session
from jobboard.persistence.exceptions import PersistenceError
from jobboard.persistence.repositories import (
    AccountRepository,
    AlertDeliveryRepository,
    AlertSubscriptionRepository,
    CandidateProfileRepository,
    JobPostRepository,
)
from jobboard.utils.timestamps import utc_now

from .models import DispatchResult

logger = get_logger(__name__, component="dispatch")

SessionFactory = Callable[[], AbstractContextManager]

Subject = Union[JobPost, CandidateProfile]

# Longest wait before checking whether a queued send has started
START_POLL_SECONDS = 0.05


@dataclass
class _PlannedSend:
    alert: AlertSubscription
    request: NotificationRequest
    # time.monotonic() when a worker picked the send up
    started_at: Optional[float] = None


class AlertDispatcher:
    """Matches one subject against every active instant alert of its kind and notifies owners."""

    def __init__(
        self,
        gateway: NotificationGateway,
        session_factory: SessionFactory = get_session,
        matcher: Optional[CriteriaMatcher] = None,
        scorer: Optional[MatchScorer] = None,
        dispatch_config: Optional[DispatchConfig] = None,
        min_match_score: float = 0.0,
        clock: Callable = utc_now,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.matcher = matcher or CriteriaMatcher()
        self.scorer = scorer or MatchScorer()
        self.config = dispatch_config or DispatchConfig()
        self.min_match_score = min_match_score
        self.clock = clock
        self.logger = logger_instance or logger

    def dispatch(self, event: DomainEvent) -> DispatchResult:
        """Dispatch one post-commit event.

        Raises:
            PersistenceError: If the subject or subscriptions cannot be loaded;
                the caller retries the whole event
        """
        kind = event.alert_kind
        result = DispatchResult(event_id=event.event_id, subject_id=event.subject_id, kind=kind)

        with log_context(event_id=event.event_id, subject_id=event.subject_id):
            self.logger.info(
                f"Dispatching {event.event_type.value} for {event.subject_id}",
                extra={"event": "dispatch.started", "kind": kind.value},
            )

            plan = self._plan(event, result)

            if plan:
                for planned, error in self._send_all(plan, event):
                    if error is None:
                        result.sent += 1
                    else:
                        stage, message = error
                        result.record_failure(planned.alert.id, stage, message)

            self.logger.info(
                f"Dispatch complete: {result.sent} sent, {result.skipped} skipped, "
                f"{result.failed} failed ({result.matched}/{result.evaluated} matched)",
                extra={"event": "dispatch.completed", **result.as_log_fields()},
            )

        return result

    # Phase 1

    def _plan(self, event: DomainEvent, result: DispatchResult) -> List[_PlannedSend]:
        plan: List[_PlannedSend] = []

        with self.session_factory() as session:
            subject = self._load_subject(session, event)
            if subject is None:
                result.skipped_reason = "subject_missing"
                self.logger.info(
                    "Subject no longer exists, nothing to dispatch",
                    extra={"event": "dispatch.subject_missing"},
                )
                return plan

            if isinstance(subject, JobPost) and subject.status != JobStatus.PUBLISHED:
                result.skipped_reason = "not_published"
                self.logger.info(
                    f"Job is {subject.status.value}, not dispatching",
                    extra={"event": "dispatch.not_published", "status": subject.status.value},
                )
                return plan

            alerts_repo = AlertSubscriptionRepository(session)
            subscriptions, invalid_ids = alerts_repo.load_active(event.alert_kind, AlertFrequency.INSTANT)
            for alert_id in invalid_ids:
                result.record_failure(alert_id, "criteria", "stored criteria failed validation")

            deliveries = AlertDeliveryRepository(session)
            accounts = AccountRepository(session)

            for alert in subscriptions:
                with log_context(alert_id=alert.id):
                    planned = self._plan_one(alert, subject, event, result, deliveries, accounts)
                if planned is not None:
                    plan.append(planned)

        return plan

    def _plan_one(
        self,
        alert: AlertSubscription,
        subject: Subject,
        event: DomainEvent,
        result: DispatchResult,
        deliveries: AlertDeliveryRepository,
        accounts: AccountRepository,
    ) -> Optional[_PlannedSend]:
        result.evaluated += 1
        try:
            match_result = self.matcher.evaluate(subject, alert.criteria)
        except Exception as e:
            self.logger.error(
                f"Criteria evaluation failed for alert {alert.id}: {e}",
                exc_info=True,
                extra={"event": "dispatch.evaluation_failed"},
            )
            result.record_failure(alert.id, "evaluation", str(e))
            return None

        if not match_result.is_match:
            return None
        result.matched += 1

        status = deliveries.status_of(alert.id, event.subject_id, event.event_id)
        if status == DeliveryStatus.DELIVERED:
            result.skipped += 1
            self.logger.info(
                "Alert already delivered for this event",
                extra={"event": "dispatch.duplicate"},
            )
            return None
        if status == DeliveryStatus.SENDING:
            self.logger.warning(
                "Previous send for this event has not returned yet",
                extra={"event": "dispatch.in_flight"},
            )
            result.record_failure(alert.id, "in_flight", "previous send has not returned yet")
            return None

        account = accounts.get(alert.owner)
        address = account.contact_address() if account is not None else None
        if not address:
            result.skipped += 1
            self.logger.info(
                f"No contact address for alert owner {alert.owner}",
                extra={"event": "dispatch.no_address", "owner": alert.owner},
            )
            return None

        if alert.kind == AlertKind.RESUME:
            score = self.scorer.score(subject, alert.criteria)
            if score < self.min_match_score:
                result.skipped += 1
                self.logger.info(
                    f"Match score {score:.1f} below minimum {self.min_match_score:.1f}",
                    extra={"event": "dispatch.below_min_score", "match_score": score},
                )
                return None
            metadata = build_resume_alert_metadata(subject, alert, match_result, score)
            template_kind = TemplateKind.RESUME_ALERT
        else:
            metadata = build_job_alert_metadata(subject, alert, match_result)
            template_kind = TemplateKind.JOB_ALERT

        self.logger.debug(
            "Alert matched",
            extra={"event": "dispatch.matched", "rationale": build_rationale_dict(match_result)},
        )

        return _PlannedSend(
            alert=alert,
            request=NotificationRequest(
                recipient_address=address,
                template_kind=template_kind,
                subject_id=event.subject_id,
                metadata=metadata,
                alert_id=alert.id,
            ),
        )

    @staticmethod
    def _load_subject(session: Session, event: DomainEvent) -> Optional[Subject]:
        if event.alert_kind == AlertKind.JOB:
            return JobPostRepository(session).get(event.subject_id)
        return CandidateProfileRepository(session).get(event.subject_id)

    # Phase 2

    def _send_all(
        self, plan: List[_PlannedSend], event: DomainEvent
    ) -> List[Tuple[_PlannedSend, Optional[Tuple[str, str]]]]:
        """Send every planned notification; return (planned, None | (stage, error)) pairs.

        Each send gets ``send_timeout_seconds`` from the moment a worker picks
        it up. A send still queued when the queue deadline passes is cancelled
        without being attempted.
        """
        timeout = self.config.send_timeout_seconds
        workers = min(self.config.max_workers, len(plan))
        outcomes: List[Tuple[_PlannedSend, Optional[Tuple[str, str]]]] = []
        pending: Dict[Future, _PlannedSend] = {}

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="alert-send")
        try:
            for planned in plan:
                error = self._reserve(planned, event)
                if error is not None:
                    outcomes.append((planned, error))
                    continue
                pending[pool.submit(bind_log_context(self._send_one), planned)] = planned

            # One timeout per round of workers, plus one round of slack
            queue_deadline = time.monotonic() + timeout * (math.ceil(len(pending) / workers) + 1)

            while pending:
                done, _ = wait(
                    list(pending),
                    timeout=self._next_wakeup(pending.values(), queue_deadline),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    planned = pending.pop(future)
                    outcomes.append((planned, self._settle(planned, event, future)))

                now = time.monotonic()
                for future, planned in list(pending.items()):
                    if future.done():
                        continue
                    if planned.started_at is not None:
                        if now - planned.started_at >= timeout:
                            del pending[future]
                            outcomes.append((planned, self._time_out(planned, event, future)))
                    elif now >= queue_deadline and future.cancel():
                        del pending[future]
                        self.logger.error(
                            f"Notification for alert {planned.alert.id} never started",
                            extra={"event": "notification.send.not_started", "alert_id": planned.alert.id},
                        )
                        self._release(planned, event)
                        outcomes.append((planned, ("timeout", "send was never started")))
        finally:
            # Timed-out sends keep running on their worker and settle through their callback
            pool.shutdown(wait=False)

        return outcomes

    def _next_wakeup(self, sends, queue_deadline: float) -> float:
        now = time.monotonic()
        wakeups = [queue_deadline - now]
        for planned in sends:
            if planned.started_at is None:
                wakeups.append(START_POLL_SECONDS)
            else:
                wakeups.append(planned.started_at + self.config.send_timeout_seconds - now)
        return max(0.0, min(wakeups))

    def _send_one(self, planned: _PlannedSend) -> None:
        planned.started_at = time.monotonic()
        with log_context(alert_id=planned.alert.id):
            self.gateway.send(planned.request)

    def _time_out(
        self, planned: _PlannedSend, event: DomainEvent, future: Future
    ) -> Tuple[str, str]:
        timeout = self.config.send_timeout_seconds
        self.logger.error(
            f"Notification for alert {planned.alert.id} timed out after {timeout}s; "
            f"its delivery stays reserved until the send returns",
            extra={"event": "notification.send.timeout", "alert_id": planned.alert.id},
        )
        future.add_done_callback(bind_log_context(partial(self._settle_late, planned, event)))
        return ("timeout", f"timed out after {timeout}s")

    def _settle_late(self, planned: _PlannedSend, event: DomainEvent, future: Future) -> None:
        """Done-callback for a send that outlived its timeout."""
        try:
            error = self._settle(planned, event, future)
        except Exception as e:
            self.logger.error(
                f"Could not settle late send for alert {planned.alert.id}: {e}",
                exc_info=True,
                extra={"event": "dispatch.settle_failed", "alert_id": planned.alert.id},
            )
            return

        if error is None:
            self.logger.warning(
                f"Notification for alert {planned.alert.id} completed after its timeout",
                extra={"event": "notification.send.late_success", "alert_id": planned.alert.id},
            )

    # Phase 3

    def _settle(
        self, planned: _PlannedSend, event: DomainEvent, future: Future
    ) -> Optional[Tuple[str, str]]:
        """Record a finished send: confirm on success, release on failure."""
        try:
            future.result()
        except Exception as e:
            self.logger.error(
                f"Notification for alert {planned.alert.id} failed: {e}",
                extra={
                    "event": "notification.send.failure",
                    "alert_id": planned.alert.id,
                    "error_type": type(e).__name__,
                },
            )
            self._release(planned, event)
            return ("send", str(e))

        self._record_delivery(planned, event)
        return None

    def _reserve(self, planned: _PlannedSend, event: DomainEvent) -> Optional[Tuple[str, str]]:
        """Write the sending ledger row; return (stage, error) if the send must not go out."""
        alert_id = planned.alert.id
        try:
            with self.session_factory() as session:
                reserved = AlertDeliveryRepository(session).reserve(
                    alert_id,
                    event.subject_id,
                    event.event_id,
                    planned.request.recipient_address,
                    self.clock(),
                )
        except PersistenceError as e:
            self.logger.error(
                f"Could not reserve delivery for alert {alert_id}: {e}",
                extra={"event": "dispatch.reserve_failed", "alert_id": alert_id},
            )
            return ("reserve", str(e))

        if not reserved:
            self.logger.warning(
                f"Delivery for alert {alert_id} was reserved by another dispatch",
                extra={"event": "dispatch.in_flight", "alert_id": alert_id},
            )
            return ("in_flight", "delivery reserved by another dispatch")
        return None

    def _record_delivery(self, planned: _PlannedSend, event: DomainEvent) -> None:
        """Mark the ledger row delivered and bump alert stats for one confirmed send."""
        alert_id = planned.alert.id
        now = self.clock()
        try:
            with self.session_factory() as session:
                AlertDeliveryRepository(session).confirm(alert_id, event.subject_id, event.event_id, now)
                AlertSubscriptionRepository(session).record_delivery(alert_id, now)
        except PersistenceError as e:
            self.logger.error(
                f"Notification sent but delivery could not be recorded for alert {alert_id}: {e}",
                exc_info=True,
                extra={"event": "dispatch.record_failed", "alert_id": alert_id},
            )

    def _release(self, planned: _PlannedSend, event: DomainEvent) -> None:
        """Drop the sending row of a send that did not go out, so a retry may send it."""
        alert_id = planned.alert.id
        try:
            with self.session_factory() as session:
                AlertDeliveryRepository(session).release(alert_id, event.subject_id, event.event_id)
        except PersistenceError as e:
            self.logger.error(
                f"Could not release delivery for alert {alert_id}: {e}",
                exc_info=True,
                extra={"event": "dispatch.release_failed", "alert_id": alert_id},
            )
