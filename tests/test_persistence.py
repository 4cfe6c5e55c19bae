"""Unit tests for persistence layer."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import text

from jobboard.access.policy import JobScope
from jobboard.domain.events import DeliveryStatus, JobPublished, OutboxStatus
from jobboard.domain.models import AlertKind, AlertFrequency, JobStatus
from jobboard.persistence import (
    AccountRepository,
    AlertDeliveryRepository,
    AlertSubscriptionRepository,
    CandidateProfileRepository,
    DatabaseConnectionError,
    DataIntegrityError,
    JobPostRepository,
    OutboxRepository,
    RecordNotFoundError,
    close_database,
    get_session,
    init_database,
)
from jobboard.persistence.database import _redact_url
from jobboard.persistence.schema import AlertSubscriptionModel
from tests.helpers import make_account, make_alert, make_job, make_profile


class TestDatabaseInitialization:
    def test_init_database_creates_file_and_parent_directories(self, tmp_path):
        db_file = tmp_path / "nested" / "jobs.db"

        init_database(f"sqlite:///{db_file}")
        try:
            assert db_file.exists()
            with get_session() as session:
                tables = {
                    row[0]
                    for row in session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
                }
            assert {
                "accounts", "job_posts", "candidate_profiles", "alert_subscriptions",
                "alert_deliveries", "outbox_events",
            } <= tables
        finally:
            close_database()

    def test_invalid_url_raises(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

    def test_session_before_init_raises(self):
        close_database()
        with pytest.raises(DatabaseConnectionError):
            with get_session():
                pass

    def test_redact_url(self):
        assert _redact_url("postgresql://app:secret@db:5432/jobs") == "postgresql://app:***@db:5432/jobs"
        assert _redact_url("sqlite:///./data/job_board.db") == "sqlite:///./data/job_board.db"


@pytest.mark.usefixtures("database")
class TestJobPostRepository:
    def test_add_assigns_id_and_timestamps(self):
        with get_session() as session:
            saved = JobPostRepository(session).add(make_job(id=None))

        assert saved.id
        assert saved.created_at is not None
        assert saved.location.city == "Coimbatore"

    def test_save_never_rewrites_ownership(self):
        with get_session() as session:
            JobPostRepository(session).add(make_job(id="j1", employer="emp-1"))

        with get_session() as session:
            repo = JobPostRepository(session)
            job = repo.get("j1")
            changed = job.model_copy(update={"employer": "emp-2", "title": "Senior CNC Operator"})
            saved = repo.save(changed)

        assert saved.employer == "emp-1"
        assert saved.title == "Senior CNC Operator"

    def test_save_missing_job_raises(self):
        with get_session() as session:
            with pytest.raises(RecordNotFoundError):
                JobPostRepository(session).save(make_job(id="nope"))

    def test_delete(self):
        with get_session() as session:
            JobPostRepository(session).add(make_job(id="j1"))

        with get_session() as session:
            repo = JobPostRepository(session)
            assert repo.delete("j1") is True
            assert repo.delete("j1") is False
            assert repo.get("j1") is None

    def test_list_for_scope_and_status(self):
        with get_session() as session:
            repo = JobPostRepository(session)
            repo.add(make_job(id="a1", employer="emp-a"))
            repo.add(make_job(id="a2", employer="emp-a", status=JobStatus.DRAFT))
            repo.add(make_job(id="b1", employer="emp-b"))

        with get_session() as session:
            repo = JobPostRepository(session)
            assert {j.id for j in repo.list_for_scope(JobScope.unrestricted())} == {"a1", "a2", "b1"}
            assert {j.id for j in repo.list_for_scope(JobScope.employers({"emp-a"}))} == {"a1", "a2"}
            assert [j.id for j in repo.list_for_scope(JobScope.employers({"emp-a"}), status="Draft")] == ["a2"]
            assert repo.list_for_scope(JobScope.employers(set())) == []
            assert repo.list_for_scope(JobScope.nothing()) == []


@pytest.mark.usefixtures("database")
class TestProfileAndAccountRepositories:
    def test_one_profile_per_candidate(self):
        with get_session() as session:
            CandidateProfileRepository(session).add(make_profile(id="p1", candidate="cand-1"))

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                CandidateProfileRepository(session).add(make_profile(id="p2", candidate="cand-1"))

    def test_save_profile_keeps_owner(self):
        with get_session() as session:
            saved = CandidateProfileRepository(session).add(make_profile(id="p1", candidate="cand-1"))

        edited = saved.model_copy(update={"candidate": "cand-9", "skills": ["CNC", "VMC"]})
        with get_session() as session:
            CandidateProfileRepository(session).save(edited)

        with get_session() as session:
            reloaded = CandidateProfileRepository(session).get("p1")
        assert reloaded.skills == ["CNC", "VMC"]
        assert reloaded.candidate == "cand-1"
        assert reloaded.created_at == saved.created_at

        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                CandidateProfileRepository(session).save(make_profile(id="missing"))

    def test_account_round_trip(self):
        with get_session() as session:
            AccountRepository(session).add(make_account("emp-1", contact_email="hr@kovai.example"))

        with get_session() as session:
            account = AccountRepository(session).get("emp-1")

        assert account.contact_address() == "hr@kovai.example"
        with get_session() as session:
            assert AccountRepository(session).get("missing") is None


@pytest.mark.usefixtures("database")
class TestAlertSubscriptionRepository:
    def test_criteria_round_trip_keeps_empty_lists(self):
        alert = make_alert(criteria={"skills": [], "salary_range": {"min": 500000}})
        with get_session() as session:
            AlertSubscriptionRepository(session).add(alert)

        with get_session() as session:
            loaded = AlertSubscriptionRepository(session).get(alert.id)

        assert loaded.criteria.skills == []
        assert loaded.criteria.salary_range.min == 500000
        assert loaded.criteria.salary_range.max is None

    def test_load_active_filters_kind_frequency_and_active(self):
        with get_session() as session:
            repo = AlertSubscriptionRepository(session)
            repo.add(make_alert(id="job-instant"))
            repo.add(make_alert(id="job-daily", frequency=AlertFrequency.DAILY))
            repo.add(make_alert(id="job-inactive", is_active=False))
            repo.add(make_alert(id="resume-instant", kind=AlertKind.RESUME, owner="emp-1"))

        with get_session() as session:
            subs, invalid = AlertSubscriptionRepository(session).load_active(AlertKind.JOB)

        assert [s.id for s in subs] == ["job-instant"]
        assert invalid == []

    def test_load_active_reports_invalid_criteria(self):
        with get_session() as session:
            AlertSubscriptionRepository(session).add(make_alert(id="good"))
            AlertSubscriptionRepository(session).add(make_alert(id="bad"))

        with get_session() as session:
            row = session.get(AlertSubscriptionModel, "bad")
            row.criteria = {"salaryRange": {"min": 10, "max": 5}}

        with get_session() as session:
            subs, invalid = AlertSubscriptionRepository(session).load_active(AlertKind.JOB)

        assert [s.id for s in subs] == ["good"]
        assert invalid == ["bad"]

    def test_record_delivery_increments_stats(self):
        matched_at = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
        with get_session() as session:
            AlertSubscriptionRepository(session).add(make_alert(id="a1"))

        for _ in range(2):
            with get_session() as session:
                AlertSubscriptionRepository(session).record_delivery("a1", matched_at)

        with get_session() as session:
            stats = AlertSubscriptionRepository(session).get("a1").stats

        assert stats.emails_sent == 2
        assert stats.total_matches == 2
        assert stats.last_match == matched_at

    def test_record_delivery_missing_alert(self):
        with get_session() as session:
            with pytest.raises(RecordNotFoundError):
                AlertSubscriptionRepository(session).record_delivery("missing", datetime.now(timezone.utc))


@pytest.mark.usefixtures("database")
class TestAlertDeliveryRepository:
    @pytest.fixture(autouse=True)
    def alert(self, database):
        with get_session() as session:
            AlertSubscriptionRepository(session).add(make_alert(id="a1"))

    def test_reserve_then_confirm(self):
        now = datetime.now(timezone.utc)
        with get_session() as session:
            ledger = AlertDeliveryRepository(session)
            assert ledger.status_of("a1", "job-1", "e1") is None
            assert ledger.reserve("a1", "job-1", "e1", "cand-1@example.com", now) is True
            assert ledger.reserve("a1", "job-1", "e1", "cand-1@example.com", now) is False
            assert ledger.status_of("a1", "job-1", "e1") == DeliveryStatus.SENDING
            assert not ledger.has_been_delivered("a1", "job-1", "e1")

        with get_session() as session:
            ledger = AlertDeliveryRepository(session)
            ledger.confirm("a1", "job-1", "e1", now)
            assert ledger.has_been_delivered("a1", "job-1", "e1")
            assert not ledger.has_been_delivered("a1", "job-1", "e2")

    def test_release_only_drops_unconfirmed_rows(self):
        now = datetime.now(timezone.utc)
        with get_session() as session:
            ledger = AlertDeliveryRepository(session)
            ledger.reserve("a1", "job-1", "e1", "cand-1@example.com", now)
            ledger.reserve("a1", "job-1", "e2", "cand-1@example.com", now)
            ledger.confirm("a1", "job-1", "e2", now)

            assert ledger.release("a1", "job-1", "e1") is True
            assert ledger.release("a1", "job-1", "e2") is False
            assert ledger.status_of("a1", "job-1", "e1") is None
            assert ledger.status_of("a1", "job-1", "e2") == DeliveryStatus.DELIVERED

    def test_confirm_without_reservation(self):
        with get_session() as session:
            with pytest.raises(RecordNotFoundError):
                AlertDeliveryRepository(session).confirm("a1", "job-1", "e1", datetime.now(timezone.utc))


@pytest.mark.usefixtures("database")
class TestOutboxRepository:
    def _enqueue(self, job_id="job-1"):
        event = JobPublished(job_id=job_id)
        with get_session() as session:
            OutboxRepository(session).enqueue(event)
        return event

    def test_enqueue_is_pending(self):
        event = self._enqueue()

        with get_session() as session:
            record = OutboxRepository(session).get(event.event_id)

        assert record.status == OutboxStatus.PENDING
        assert record.attempts == 0
        assert record.to_event().subject_id == "job-1"

    def test_claim_succeeds_once(self):
        event = self._enqueue()

        with get_session() as session:
            first = OutboxRepository(session).claim(event.event_id)
        with get_session() as session:
            second = OutboxRepository(session).claim(event.event_id)

        assert first.status == OutboxStatus.PROCESSING
        assert first.attempts == 1
        assert second is None

    def test_mark_failed_returns_to_pending_or_gives_up(self):
        event = self._enqueue()
        with get_session() as session:
            outbox = OutboxRepository(session)
            outbox.claim(event.event_id)
            outbox.mark_failed(event.event_id, "smtp down", give_up=False)
            assert outbox.get(event.event_id).status == OutboxStatus.PENDING
            assert outbox.get(event.event_id).last_error == "smtp down"

            outbox.claim(event.event_id)
            outbox.mark_failed(event.event_id, "smtp down", give_up=True)
            record = outbox.get(event.event_id)

        assert record.status == OutboxStatus.FAILED
        assert record.attempts == 2

    def test_mark_dispatched(self):
        event = self._enqueue()
        with get_session() as session:
            outbox = OutboxRepository(session)
            outbox.claim(event.event_id)
            outbox.mark_dispatched(event.event_id)
            record = outbox.get(event.event_id)

        assert record.status == OutboxStatus.DISPATCHED
        assert record.dispatched_at is not None

    def test_list_pending_and_requeue_processing(self):
        first = self._enqueue("job-1")
        second = self._enqueue("job-2")

        with get_session() as session:
            OutboxRepository(session).claim(first.event_id)

        with get_session() as session:
            outbox = OutboxRepository(session)
            assert [r.event_id for r in outbox.list_pending(10)] == [second.event_id]
            assert outbox.requeue_processing() == 1
            assert {r.event_id for r in outbox.list_pending(10)} == {first.event_id, second.event_id}
            assert len(outbox.list_pending(1)) == 1

    def test_status_update_on_missing_event(self):
        with get_session() as session:
            with pytest.raises(RecordNotFoundError):
                OutboxRepository(session).mark_dispatched("missing")
