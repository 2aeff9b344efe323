from datetime import datetime, timedelta, timezone

import pytest

from inquaire.models import AnalysisJob, Inquiry, InquiryStatus, Platform
from inquaire.services.customer_service import resolve_customer
from inquaire.services.inquiry_service import create_inquiry
from inquaire.services.job_service import (
    claim_analysis_jobs,
    compute_backoff_seconds,
    enqueue_analysis_job,
    enqueue_missing_jobs,
    list_dead_jobs,
    mark_job_completed,
    requeue_stale_jobs,
    retry_dead_job,
    schedule_job_retry,
)
from inquaire.services.job_state import (
    InvalidJobTransitionError,
    JobStatus,
    bury,
    can_transition,
    complete,
    retry,
    start,
)

T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def inquiry(db_session, seed):
    customer, _ = resolve_customer(db_session, business_id=seed.business.id, platform=Platform.LINE, platform_user_id="U1")
    return create_inquiry(
        db_session,
        channel_id=seed.channels[Platform.LINE].id,
        customer_id=customer.id,
        message_text="Can I book Friday?",
        now=T0,
    )


def _job(db_session, inquiry) -> AnalysisJob:
    db_session.expire_all()
    return db_session.query(AnalysisJob).filter(AnalysisJob.inquiry_id == inquiry.id).one()


class TestJobState:
    def test_happy_path(self):
        assert start(JobStatus.PENDING) == JobStatus.RUNNING
        assert complete(JobStatus.RUNNING) == JobStatus.COMPLETED

    def test_failure_paths(self):
        assert retry(JobStatus.RUNNING) == JobStatus.PENDING
        assert bury(JobStatus.RUNNING) == JobStatus.DEAD
        assert retry(JobStatus.DEAD) == JobStatus.PENDING

    def test_completed_is_terminal(self):
        for target in JobStatus:
            assert can_transition(JobStatus.COMPLETED, target) is False

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidJobTransitionError):
            complete(JobStatus.PENDING)


class TestBackoff:
    def test_doubles_per_attempt(self):
        assert compute_backoff_seconds(1, 2, 300) == 4
        assert compute_backoff_seconds(2, 2, 300) == 8
        assert compute_backoff_seconds(3, 2, 300) == 16

    def test_capped(self):
        assert compute_backoff_seconds(20, 2, 300) == 300


class TestEnqueue:
    def test_first_enqueue_creates_pending_job(self, db_session, inquiry):
        assert enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0) is True
        job = _job(db_session, inquiry)
        assert job.status == JobStatus.PENDING.value
        assert job.attempt == 1
        assert job.max_attempts == 3

    def test_second_enqueue_is_noop(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        assert enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0) is False
        assert db_session.query(AnalysisJob).count() == 1


class TestClaimAndRetry:
    def test_claim_moves_due_jobs_to_running(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        assert row["inquiry_id"] == inquiry.id
        assert row["attempt"] == 1
        assert _job(db_session, inquiry).status == JobStatus.RUNNING.value
        assert claim_analysis_jobs(db_session, now=T0) == []

    def test_failed_attempts_back_off_then_die(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        now = T0

        [row] = claim_analysis_jobs(db_session, now=now)
        status, delay = schedule_job_retry(db_session, row["id"], error="boom", base_seconds=2, max_seconds=300, now=now)
        assert (status, delay) == (JobStatus.PENDING, 4)
        assert claim_analysis_jobs(db_session, now=now + timedelta(seconds=3)) == []

        now += timedelta(seconds=4)
        [row] = claim_analysis_jobs(db_session, now=now)
        assert row["attempt"] == 2
        status, delay = schedule_job_retry(db_session, row["id"], error="boom", base_seconds=2, max_seconds=300, now=now)
        assert (status, delay) == (JobStatus.PENDING, 8)

        now += timedelta(seconds=8)
        [row] = claim_analysis_jobs(db_session, now=now)
        assert row["attempt"] == 3
        status, delay = schedule_job_retry(db_session, row["id"], error="boom", base_seconds=2, max_seconds=300, now=now)
        assert (status, delay) == (JobStatus.DEAD, None)

        job = _job(db_session, inquiry)
        assert job.status == JobStatus.DEAD.value
        assert job.last_error == "boom"
        assert claim_analysis_jobs(db_session, now=now + timedelta(hours=1)) == []

    def test_mark_completed(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        mark_job_completed(db_session, row["id"], now=T0)
        job = _job(db_session, inquiry)
        assert job.status == JobStatus.COMPLETED.value
        assert job.completed_at is not None


class TestDeadJobs:
    def _bury(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, max_attempts=1, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        schedule_job_retry(db_session, row["id"], error="boom", base_seconds=2, max_seconds=300, now=T0)
        return row["id"]

    def test_list_and_retry(self, db_session, inquiry):
        job_id = self._bury(db_session, inquiry)
        assert [job.id for job in list_dead_jobs(db_session)] == [job_id]

        job = retry_dead_job(db_session, job_id, now=T0)
        assert job.status == JobStatus.PENDING.value
        assert job.attempt == 1
        assert list_dead_jobs(db_session) == []
        assert len(claim_analysis_jobs(db_session, now=T0)) == 1

    def test_retry_of_live_job_is_invalid(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        job_id = _job(db_session, inquiry).id
        with pytest.raises(InvalidJobTransitionError):
            retry_dead_job(db_session, job_id, now=T0)

    def test_retry_of_running_job_is_invalid(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        job = _job(db_session, inquiry)
        job.attempt = 3
        db_session.commit()

        with pytest.raises(InvalidJobTransitionError):
            retry_dead_job(db_session, row["id"], now=T0)

        job = _job(db_session, inquiry)
        assert job.status == JobStatus.RUNNING.value
        assert job.attempt == 3
        assert claim_analysis_jobs(db_session, now=T0) == []


class TestReleasedLease:
    def test_completion_after_requeue_is_ignored(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        requeue_stale_jobs(db_session, lease_seconds=300, base_seconds=2, max_seconds=300, now=T0 + timedelta(seconds=301))

        assert mark_job_completed(db_session, row["id"], now=T0 + timedelta(seconds=302)) is False
        assert _job(db_session, inquiry).status == JobStatus.PENDING.value

    def test_failure_after_requeue_leaves_row_alone(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        [row] = claim_analysis_jobs(db_session, now=T0)
        requeue_stale_jobs(db_session, lease_seconds=300, base_seconds=2, max_seconds=300, now=T0 + timedelta(seconds=301))
        before = _job(db_session, inquiry).attempt

        outcome = schedule_job_retry(db_session, row["id"], error="late", base_seconds=2, max_seconds=300, now=T0)

        assert outcome is None
        job = _job(db_session, inquiry)
        assert job.status == JobStatus.PENDING.value
        assert job.attempt == before
        assert job.last_error == "lease_expired"


class TestReconciliation:
    def test_stale_running_job_is_requeued(self, db_session, inquiry):
        enqueue_analysis_job(db_session, inquiry_id=inquiry.id, business_id=inquiry.business_id, now=T0)
        claim_analysis_jobs(db_session, now=T0)

        fresh = requeue_stale_jobs(db_session, lease_seconds=300, base_seconds=2, max_seconds=300, now=T0 + timedelta(seconds=60))
        assert fresh == {"requeued": 0, "dead": 0}

        stale = requeue_stale_jobs(db_session, lease_seconds=300, base_seconds=2, max_seconds=300, now=T0 + timedelta(seconds=301))
        assert stale == {"requeued": 1, "dead": 0}
        job = _job(db_session, inquiry)
        assert job.status == JobStatus.PENDING.value
        assert job.attempt == 2
        assert job.last_error == "lease_expired"

    def test_orphan_inquiry_gets_a_job_after_grace(self, db_session, inquiry):
        assert enqueue_missing_jobs(db_session, grace_seconds=120, now=T0 + timedelta(seconds=60)) == 0
        assert enqueue_missing_jobs(db_session, grace_seconds=120, now=T0 + timedelta(seconds=121)) == 1
        assert _job(db_session, inquiry).status == JobStatus.PENDING.value
        assert enqueue_missing_jobs(db_session, grace_seconds=120, now=T0 + timedelta(seconds=500)) == 0

    def test_analyzed_inquiries_are_not_reenqueued(self, db_session, inquiry):
        stored = db_session.get(Inquiry, inquiry.id)
        stored.status = InquiryStatus.IN_PROGRESS.value
        stored.analyzed_at = T0
        db_session.commit()
        assert enqueue_missing_jobs(db_session, grace_seconds=0, now=T0 + timedelta(hours=1)) == 0
