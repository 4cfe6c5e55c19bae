"""Integration tests for the write-to-notification flow.

Tests end-to-end flow:
- Write service -> outbox -> event bus -> relay -> dispatcher -> gateway
- Job alerts and resume alerts with real SQLite (in-memory)
- Dedupe across bus delivery, periodic drains and re-dispatch
- Rendered email content through the email gateway with a mocked SMTP client
"""

from unittest.mock import Mock

import pytest

from jobboard.config.environment import EnvironmentConfig
from jobboard.config.models import AppConfig
from jobboard.domain.events import EventType, JobPublished, OutboxStatus
from jobboard.domain.models import AlertKind, JobStatus, Role
from jobboard.notifications import EmailNotificationGateway
from jobboard.notifications.smtp_client import SMTPClient
from jobboard.persistence import (
    AccountRepository,
    AlertSubscriptionRepository,
    OutboxRepository,
    close_database,
    get_session,
    init_database,
)
from jobboard.runtime import build_runtime
from tests.helpers import (
    RecordingGateway,
    make_account,
    make_alert,
    make_job,
    make_principal,
    make_profile,
    wait_until,
)


@pytest.fixture
def integration_database():
    init_database("sqlite:///:memory:")
    yield
    close_database()


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        smtp_host="smtp.mailhost.in",
        smtp_port=587,
        smtp_sender_address="alerts@jobboard.in",
        frontend_url="https://jobs.kovai.in",
    )


@pytest.fixture
def seeded(integration_database):
    with get_session() as session:
        accounts = AccountRepository(session)
        accounts.add(make_account("cand-cbe", email="arun@candidates.in"))
        accounts.add(make_account("cand-chn", email="meena@candidates.in"))
        accounts.add(make_account("emp-1", email="owner@kovaiprecision.in", role=Role.EMPLOYER))
        accounts.add(
            make_account("emp-2", email="owner@chennaitools.in", role=Role.EMPLOYER, contact_email="hr@chennaitools.in")
        )

        alerts = AlertSubscriptionRepository(session)
        alerts.add(make_alert(id="a-cbe", owner="cand-cbe", title="Coimbatore jobs", criteria={"location": {"city": "Coimbatore"}}))
        alerts.add(make_alert(id="a-chn", owner="cand-chn", title="Chennai jobs", criteria={"location": {"city": "Chennai"}}))
        alerts.add(
            make_alert(
                id="r-chn", kind=AlertKind.RESUME, owner="emp-2", title="Chennai CNC",
                criteria={"skills": ["CNC"], "location": {"city": "Chennai"}},
            )
        )


def outbox_statuses():
    with get_session() as session:
        repo = OutboxRepository(session)
        return [repo.get(e.event_id).status for e in repo.list_pending(100)]


def alert_stats(alert_id):
    with get_session() as session:
        return AlertSubscriptionRepository(session).get(alert_id).stats


@pytest.mark.usefixtures("seeded")
class TestAlertFlow:
    @pytest.fixture
    def gateway(self):
        return RecordingGateway()

    @pytest.fixture
    def runtime(self, env_config, gateway):
        runtime = build_runtime(AppConfig(), env_config, gateway=gateway, synchronous=True)
        yield runtime
        runtime.shutdown(wait=True)

    def test_published_job_notifies_matching_candidates_only(self, runtime, gateway):
        job = runtime.jobs.create_job_post(make_principal("emp-1"), make_job(id=None, employer="emp-1"))

        assert gateway.recipients() == ["arun@candidates.in"]
        request = gateway.sent[0]
        assert request.subject_id == job.id
        assert request.metadata["alert_title"] == "Coimbatore jobs"
        assert outbox_statuses() == []

        with get_session() as session:
            assert AlertSubscriptionRepository(session).get("a-cbe").stats.emails_sent == 1

    def test_draft_then_publish_notifies_once(self, runtime, gateway):
        employer = make_principal("emp-1")
        draft = runtime.jobs.create_job_post(employer, make_job(employer="emp-1", status=JobStatus.DRAFT))
        assert gateway.sent == []

        runtime.jobs.update_job_post(employer, draft.id, {"status": "Published"})
        runtime.jobs.update_job_post(employer, draft.id, {"title": "Senior CNC Operator"})
        runtime.jobs.update_positions(employer, draft.id, 0)
        runtime.jobs.update_positions(employer, draft.id, 4)

        assert gateway.recipients() == ["arun@candidates.in"]

    def test_hr_admin_post_for_assigned_employer(self, runtime, gateway):
        hr_admin = make_principal("hr-1", Role.HR_ADMIN, ["emp-1"])

        job = runtime.jobs.create_job_post(hr_admin, make_job(employer="emp-1"))

        assert job.posted_by == "hr-1"
        assert gateway.recipients() == ["arun@candidates.in"]

    def test_new_profile_notifies_employer_contact_address(self, runtime, gateway):
        profile = runtime.profiles.create_profile(
            make_principal("cand-chn", Role.CANDIDATE), make_profile(id=None, candidate="cand-chn")
        )

        assert gateway.recipients() == ["hr@chennaitools.in"]
        request = gateway.sent[0]
        assert request.subject_id == profile.id
        assert request.metadata["match_score"] == "100.0%"

    def test_profile_edit_notifies_matching_employer_again(self, runtime, gateway):
        candidate = make_principal("cand-chn", Role.CANDIDATE)
        profile = runtime.profiles.create_profile(
            candidate, make_profile(id=None, candidate="cand-chn", skills=["Welding"])
        )
        assert gateway.sent == []

        runtime.profiles.update_profile(candidate, profile.id, {"skills": ["Welding", "CNC"]})
        runtime.profiles.update_profile(candidate, profile.id, {"skills": ["Welding", "CNC"]})

        assert gateway.recipients() == ["hr@chennaitools.in"]
        assert gateway.sent[0].subject_id == profile.id
        assert outbox_statuses() == []
        with get_session() as session:
            assert AlertSubscriptionRepository(session).get("r-chn").stats.emails_sent == 1

    def test_drain_and_redispatch_never_double_send(self, runtime, gateway):
        published = []
        runtime.bus.subscribe(EventType.JOB_PUBLISHED, published.append)
        runtime.jobs.create_job_post(make_principal("emp-1"), make_job(employer="emp-1"))
        event = published[0]

        assert runtime.relay.drain_pending().processed == 0
        assert not runtime.relay.process_event(event.event_id).claimed
        replay = runtime.dispatcher.dispatch(event)

        assert replay.sent == 0
        assert replay.skipped == 1
        assert len(gateway.sent) == 1

    def test_failed_send_is_retried_by_drain(self, env_config):
        gateway = RecordingGateway(fail_for={"arun@candidates.in"})
        runtime = build_runtime(AppConfig(), env_config, gateway=gateway, synchronous=True)
        try:
            runtime.jobs.create_job_post(make_principal("emp-1"), make_job(employer="emp-1"))
            assert gateway.sent == []
            assert outbox_statuses() == [OutboxStatus.PENDING]

            gateway.fail_for.clear()
            result = runtime.relay.drain_pending()

            assert result.dispatched == 1
            assert gateway.recipients() == ["arun@candidates.in"]
            assert outbox_statuses() == []

            assert runtime.relay.drain_pending().processed == 0
            assert len(gateway.sent) == 1
        finally:
            runtime.shutdown(wait=True)

    def test_timed_out_send_is_not_repeated_by_drain(self, env_config):
        gateway = RecordingGateway(delay_for={"arun@candidates.in": 1.5})
        config = AppConfig(
            dispatch={"send_timeout_seconds": 1, "max_workers": 1},
            email={"max_retries": 0, "smtp_timeout_seconds": 1},
        )
        runtime = build_runtime(config, env_config, gateway=gateway, synchronous=True)
        try:
            runtime.jobs.create_job_post(make_principal("emp-1"), make_job(employer="emp-1"))
            assert outbox_statuses() == [OutboxStatus.PENDING]

            # The send is still running: the drain must not start another one
            assert runtime.relay.drain_pending().dispatched == 0
            assert len(gateway.attempted) == 1

            assert wait_until(lambda: alert_stats("a-cbe").emails_sent == 1)
            assert runtime.relay.drain_pending().dispatched == 1
            assert outbox_statuses() == []
            assert len(gateway.attempted) == 1
            assert gateway.recipients() == ["arun@candidates.in"]
        finally:
            runtime.shutdown(wait=True)


@pytest.mark.usefixtures("seeded")
class TestEmailDelivery:
    def test_rendered_job_alert_email(self, env_config):
        smtp_client = Mock(spec=SMTPClient)
        gateway = EmailNotificationGateway(env_config, smtp_client=smtp_client, sleep=Mock())
        runtime = build_runtime(AppConfig(), env_config, gateway=gateway, synchronous=True)
        try:
            job = runtime.jobs.create_job_post(make_principal("emp-1"), make_job(employer="emp-1"))
        finally:
            runtime.shutdown(wait=True)

        message = smtp_client.send.call_args.args[0]
        assert message["To"] == "arun@candidates.in"
        assert message["From"] == "Job Board <alerts@jobboard.in>"
        assert message["Subject"] == "New Job Alert: CNC Operator"
        text = message.get_body(("plain",)).get_content()
        assert f"https://jobs.kovai.in/job-single-v3/{job.id}" in text
        assert "Kovai Precision Works" in text

    def test_rendered_resume_alert_email(self, env_config):
        smtp_client = Mock(spec=SMTPClient)
        gateway = EmailNotificationGateway(env_config, smtp_client=smtp_client, sleep=Mock())
        runtime = build_runtime(AppConfig(), env_config, gateway=gateway, synchronous=True)
        try:
            profile = runtime.profiles.create_profile(
                make_principal("cand-chn", Role.CANDIDATE), make_profile(candidate="cand-chn")
            )
        finally:
            runtime.shutdown(wait=True)

        message = smtp_client.send.call_args.args[0]
        assert message["To"] == "hr@chennaitools.in"
        assert message["Subject"] == 'New Resume Match: Priya Raman for "Chennai CNC"'
        html = message.get_body(("html",)).get_content()
        assert f"https://jobs.kovai.in/employer/candidates/{profile.id}" in html
        assert "https://jobs.kovai.in/employer/resume-alerts/r-chn/manage" in html

    def test_new_publication_event_is_delivered_again(self, env_config):
        gateway = RecordingGateway()
        runtime = build_runtime(AppConfig(), env_config, gateway=gateway, synchronous=True)
        try:
            job = runtime.jobs.create_job_post(make_principal("emp-1"), make_job(employer="emp-1"))
            replay = runtime.dispatcher.dispatch(JobPublished(job_id=job.id))
        finally:
            runtime.shutdown(wait=True)

        # The ledger is keyed per event
        assert replay.sent == 1
        assert len(gateway.sent) == 2
