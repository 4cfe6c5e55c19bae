"""Unit tests for the alert dispatcher.

Tests the AlertDispatcher for:
- Matching subscriptions are notified, others are not
- Statistics and dedupe ledger updates after confirmed sends
- Idempotent re-dispatch of the same event
- Per-subscription failure isolation (send errors, evaluation errors)
- Send timeouts measured from send start; late sends settled, never repeated
- Skips (no contact address, unpublished or missing job, low match score)
"""

from unittest.mock import patch

import pytest

from jobboard.config.models import DispatchConfig
from jobboard.dispatch import AlertDispatcher
from jobboard.domain.events import JobPublished, ProfileCreated, ProfileUpdated
from jobboard.domain.models import AlertKind, JobStatus, Role
from jobboard.matching.engine import CriteriaMatcher
from jobboard.notifications.models import TemplateKind
from jobboard.persistence import (
    AccountRepository,
    AlertDeliveryRepository,
    AlertSubscriptionRepository,
    CandidateProfileRepository,
    JobPostRepository,
    get_session,
)
from jobboard.persistence.schema import AlertSubscriptionModel
from tests.helpers import RecordingGateway, make_account, make_alert, make_job, make_profile, wait_until

pytestmark = pytest.mark.usefixtures("database")


def seed(job=None, profile=None, alerts=(), accounts=()):
    with get_session() as session:
        for account in accounts:
            AccountRepository(session).add(account)
        for alert in alerts:
            AlertSubscriptionRepository(session).add(alert)
        if job is not None:
            JobPostRepository(session).add(job)
        if profile is not None:
            CandidateProfileRepository(session).add(profile)


def stats_of(alert_id):
    with get_session() as session:
        return AlertSubscriptionRepository(session).get(alert_id).stats


def ledger_status(alert_id, event):
    with get_session() as session:
        return AlertDeliveryRepository(session).status_of(alert_id, event.subject_id, event.event_id)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def dispatcher(gateway):
    return AlertDispatcher(gateway=gateway, dispatch_config=DispatchConfig(max_workers=4))


@pytest.fixture
def job_setup():
    seed(
        job=make_job(id="job-1", location={"city": "Coimbatore"}),
        alerts=[
            make_alert(id="a-cbe", owner="cand-1", criteria={"location": {"city": "Coimbatore"}}),
            make_alert(id="a-chn", owner="cand-2", criteria={"location": {"city": "Chennai"}}),
            make_alert(id="a-any", owner="cand-3"),
        ],
        accounts=[make_account("cand-1"), make_account("cand-2"), make_account("cand-3")],
    )
    return JobPublished(job_id="job-1")


class TestJobAlertDispatch:
    def test_only_matching_owners_are_notified(self, dispatcher, gateway, job_setup):
        result = dispatcher.dispatch(job_setup)

        assert gateway.recipients() == ["cand-1@example.com", "cand-3@example.com"]
        assert (result.evaluated, result.matched, result.sent, result.skipped, result.failed) == (3, 2, 2, 0, 0)

        request = gateway.for_recipient("cand-1@example.com")
        assert request.template_kind == TemplateKind.JOB_ALERT
        assert request.subject_id == "job-1"
        assert request.metadata["job_title"] == "CNC Operator"
        assert request.metadata["alert_id"] == "a-cbe"

    def test_stats_and_ledger_updated_after_send(self, dispatcher, job_setup):
        dispatcher.dispatch(job_setup)

        assert stats_of("a-cbe").emails_sent == 1
        assert stats_of("a-cbe").total_matches == 1
        assert stats_of("a-cbe").last_match is not None
        assert stats_of("a-chn").emails_sent == 0

        with get_session() as session:
            ledger = AlertDeliveryRepository(session)
            assert ledger.has_been_delivered("a-cbe", "job-1", job_setup.event_id)
            assert not ledger.has_been_delivered("a-chn", "job-1", job_setup.event_id)

    def test_redispatching_same_event_sends_nothing_new(self, dispatcher, gateway, job_setup):
        dispatcher.dispatch(job_setup)
        second = dispatcher.dispatch(job_setup)

        assert len(gateway.sent) == 2
        assert second.sent == 0
        assert second.skipped == 2
        assert stats_of("a-cbe").emails_sent == 1

    def test_send_failure_is_isolated(self):
        seed(
            job=make_job(id="job-1"),
            alerts=[
                make_alert(id="a1-first", owner="cand-1"),
                make_alert(id="a2-middle", owner="cand-2"),
                make_alert(id="a3-last", owner="cand-3"),
            ],
            accounts=[make_account("cand-1"), make_account("cand-2"), make_account("cand-3")],
        )
        gateway = RecordingGateway(fail_for={"cand-2@example.com"})
        dispatcher = AlertDispatcher(gateway=gateway, dispatch_config=DispatchConfig(max_workers=1))

        result = dispatcher.dispatch(JobPublished(job_id="job-1"))

        assert [r.recipient_address for r in gateway.attempted] == [
            "cand-1@example.com",
            "cand-2@example.com",
            "cand-3@example.com",
        ]
        assert gateway.recipients() == ["cand-1@example.com", "cand-3@example.com"]
        assert result.sent == 2
        assert result.failed == 1
        assert result.failures[0].alert_id == "a2-middle"
        assert result.failures[0].stage == "send"
        assert stats_of("a1-first").emails_sent == 1
        assert stats_of("a2-middle").emails_sent == 0
        assert stats_of("a3-last").emails_sent == 1

    def test_failed_send_is_retried_on_next_dispatch(self, job_setup):
        gateway = RecordingGateway(fail_for={"cand-1@example.com"})
        AlertDispatcher(gateway=gateway).dispatch(job_setup)

        gateway.fail_for.clear()
        retry = AlertDispatcher(gateway=gateway).dispatch(job_setup)

        assert retry.sent == 1
        assert [r.recipient_address for r in gateway.sent] == ["cand-3@example.com", "cand-1@example.com"]


class TestSendTimeouts:
    def test_timeout_counts_from_send_start(self, job_setup):
        # One worker: the second send waits for the first before it starts
        gateway = RecordingGateway(delay_for={"cand-1@example.com": 1.6, "cand-3@example.com": 0.5})
        dispatcher = AlertDispatcher(
            gateway=gateway, dispatch_config=DispatchConfig(send_timeout_seconds=1, max_workers=1)
        )

        result = dispatcher.dispatch(job_setup)

        assert result.sent == 1
        assert [(f.alert_id, f.stage) for f in result.failures] == [("a-cbe", "timeout")]
        assert stats_of("a-any").emails_sent == 1
        assert wait_until(lambda: stats_of("a-cbe").emails_sent == 1)

    def test_late_success_is_recorded_and_never_resent(self, job_setup):
        gateway = RecordingGateway(delay_for={"cand-1@example.com": 1.6, "cand-3@example.com": 0.5})
        dispatcher = AlertDispatcher(
            gateway=gateway, dispatch_config=DispatchConfig(send_timeout_seconds=1, max_workers=1)
        )

        dispatcher.dispatch(job_setup)
        assert wait_until(lambda: stats_of("a-cbe").emails_sent == 1)

        retry = dispatcher.dispatch(job_setup)

        assert retry.sent == 0
        assert retry.skipped == 2
        assert len(gateway.attempted) == 2
        assert gateway.recipients() == ["cand-1@example.com", "cand-3@example.com"]
        with get_session() as session:
            assert AlertDeliveryRepository(session).has_been_delivered("a-cbe", "job-1", job_setup.event_id)

    def test_send_still_running_is_not_repeated(self, job_setup):
        gateway = RecordingGateway(delay_for={"cand-1@example.com": 1.5})
        dispatcher = AlertDispatcher(
            gateway=gateway, dispatch_config=DispatchConfig(send_timeout_seconds=1, max_workers=2)
        )

        first = dispatcher.dispatch(job_setup)
        second = dispatcher.dispatch(job_setup)

        assert [(f.alert_id, f.stage) for f in first.failures] == [("a-cbe", "timeout")]
        assert [(f.alert_id, f.stage) for f in second.failures] == [("a-cbe", "in_flight")]
        assert second.skipped == 1
        assert len(gateway.attempted) == 2

        assert wait_until(lambda: stats_of("a-cbe").emails_sent == 1)
        third = dispatcher.dispatch(job_setup)
        assert not third.has_failures
        assert len(gateway.attempted) == 2

    def test_late_failure_releases_reservation(self, job_setup):
        gateway = RecordingGateway(
            fail_for={"cand-1@example.com"}, delay_for={"cand-1@example.com": 1.5}
        )
        dispatcher = AlertDispatcher(
            gateway=gateway, dispatch_config=DispatchConfig(send_timeout_seconds=1, max_workers=2)
        )

        dispatcher.dispatch(job_setup)
        assert wait_until(lambda: ledger_status("a-cbe", job_setup) is None)

        gateway.fail_for.clear()
        gateway.delay_for.clear()
        retry = dispatcher.dispatch(job_setup)

        assert retry.sent == 1
        assert [r.recipient_address for r in gateway.attempted].count("cand-1@example.com") == 2
        assert stats_of("a-cbe").emails_sent == 1


class TestSkipsAndErrors:
    def test_evaluation_error_is_isolated(self, gateway, job_setup):
        real_evaluate = CriteriaMatcher().evaluate

        def flaky_evaluate(subject, criteria):
            if criteria.location and criteria.location.city == "Coimbatore":
                raise RuntimeError("boom")
            return real_evaluate(subject, criteria)

        matcher = CriteriaMatcher()
        with patch.object(matcher, "evaluate", side_effect=flaky_evaluate):
            result = AlertDispatcher(gateway=gateway, matcher=matcher).dispatch(job_setup)

        assert gateway.recipients() == ["cand-3@example.com"]
        assert result.failed == 1
        assert result.failures[0].stage == "evaluation"

    def test_invalid_stored_criteria_counted_as_failed(self, dispatcher, gateway, job_setup):
        with get_session() as session:
            session.get(AlertSubscriptionModel, "a-chn").criteria = {"jobType": ["not", "a", "string"]}

        result = dispatcher.dispatch(job_setup)

        assert result.failed == 1
        assert result.failures[0].stage == "criteria"
        assert len(gateway.sent) == 2

    def test_missing_contact_address_is_skipped(self, dispatcher, gateway):
        seed(
            job=make_job(id="job-1"),
            alerts=[make_alert(id="a1", owner="cand-1"), make_alert(id="a2", owner="ghost")],
            accounts=[make_account("cand-1", is_system_generated_email=True)],
        )

        result = dispatcher.dispatch(JobPublished(job_id="job-1"))

        assert gateway.sent == []
        assert result.matched == 2
        assert result.skipped == 2
        assert result.failed == 0

    @pytest.mark.parametrize("status", [JobStatus.DRAFT, JobStatus.CLOSED])
    def test_unpublished_job_is_not_dispatched(self, dispatcher, gateway, status):
        seed(job=make_job(id="job-1", status=status), alerts=[make_alert()], accounts=[make_account()])

        result = dispatcher.dispatch(JobPublished(job_id="job-1"))

        assert gateway.sent == []
        assert result.skipped_reason == "not_published"
        assert result.evaluated == 0

    def test_missing_job_is_not_dispatched(self, dispatcher, gateway):
        result = dispatcher.dispatch(JobPublished(job_id="deleted"))

        assert gateway.sent == []
        assert result.skipped_reason == "subject_missing"

    def test_resume_alerts_are_not_loaded_for_job_events(self, dispatcher, gateway):
        seed(
            job=make_job(id="job-1"),
            alerts=[make_alert(id="r1", kind=AlertKind.RESUME, owner="emp-1")],
            accounts=[make_account("emp-1", role=Role.EMPLOYER)],
        )

        result = dispatcher.dispatch(JobPublished(job_id="job-1"))

        assert result.evaluated == 0
        assert gateway.sent == []


class TestResumeAlertDispatch:
    @pytest.fixture
    def profile_setup(self):
        seed(
            profile=make_profile(id="p1", skills=["CNC"], location={"city": "Chennai"}),
            alerts=[
                make_alert(
                    id="r-strong", kind=AlertKind.RESUME, owner="emp-1", title="CNC in Chennai",
                    criteria={"skills": ["CNC"], "location": {"city": "Chennai"}},
                ),
                make_alert(
                    id="r-weak", kind=AlertKind.RESUME, owner="emp-2",
                    criteria={"skills": ["CNC", "Welding", "Brazing", "Fitting"]},
                ),
            ],
            accounts=[
                make_account("emp-1", role=Role.EMPLOYER, contact_email="hiring@kovai.example"),
                make_account("emp-2", role=Role.EMPLOYER),
            ],
        )
        return ProfileCreated(profile_id="p1")

    def test_resume_alert_carries_score_and_criteria(self, gateway, profile_setup):
        AlertDispatcher(gateway=gateway).dispatch(profile_setup)

        request = gateway.for_recipient("hiring@kovai.example")
        assert request.template_kind == TemplateKind.RESUME_ALERT
        assert request.metadata["match_score"] == "100.0%"
        assert request.metadata["candidate_name"] == "Priya Raman"
        assert {"label": "Location", "value": "Chennai"} in request.metadata["criteria"]

    def test_below_minimum_score_is_skipped(self, gateway, profile_setup):
        result = AlertDispatcher(gateway=gateway, min_match_score=50.0).dispatch(profile_setup)

        assert gateway.recipients() == ["hiring@kovai.example"]
        assert result.matched == 2
        assert result.skipped == 1
        assert stats_of("r-weak").emails_sent == 0

    def test_profile_update_is_a_new_trigger(self, gateway, profile_setup):
        dispatcher = AlertDispatcher(gateway=gateway)
        dispatcher.dispatch(profile_setup)
        dispatcher.dispatch(profile_setup)

        result = dispatcher.dispatch(ProfileUpdated(profile_id="p1"))

        assert result.sent == 2
        assert len(gateway.sent) == 4
        assert stats_of("r-strong").emails_sent == 2
