from datetime import timedelta
from decimal import Decimal
import pytest
from django.utils import timezone
from apps.jobs.ledger import ledger
from apps.jobs.models import Application, Job, Review
from apps.jobs.state_machine import job_machine
from apps.management.models import ManagementLog
from apps.notifications.models import Notification
from apps.payments.models import Payment
from apps.payments.tracker import payment_tracker
from core.constants import ApplicationStatus, JobStatus, PaymentStatus, ReviewDirection
from core.exceptions import IllegalTransition, InvalidArgument, InvalidState, Unauthorized

pytestmark = pytest.mark.django_db


def test_post_creates_posted_job(client_user):
    job = job_machine.post(client_user, '  Tile the bathroom ', '', '1500', timezone.now() + timedelta(days=3))
    assert job.status == JobStatus.POSTED
    assert job.title == 'Tile the bathroom'
    assert job.budget == Decimal('1500.00')
    assert job.currency == 'ETB'


def test_post_requires_client(worker):
    with pytest.raises(Unauthorized):
        job_machine.post(worker, 'Title', '', '100', timezone.now())


@pytest.mark.parametrize('title, budget, deadline_set', [
    ('', '100', True),
    ('Title', '0', True),
    ('Title', '100', False),
])
def test_post_validates_arguments(client_user, title, budget, deadline_set):
    deadline = timezone.now() + timedelta(days=1) if deadline_set else None
    with pytest.raises(InvalidArgument):
        job_machine.post(client_user, title, '', budget, deadline)


def test_full_lifecycle_to_completion(submitted_job, client_user, worker):
    assert submitted_job.status == JobStatus.AWAITING_COMPLETION

    payment = payment_tracker.initiate(submitted_job.pk, client_user)
    payment = payment_tracker.attempt_gateway_settlement(payment.pk)

    job = Job.objects.get(pk=submitted_job.pk)
    assert payment.status == PaymentStatus.SETTLED
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at is not None


def test_start_work_only_by_assigned_worker(assigned_job, worker2):
    with pytest.raises(Unauthorized):
        job_machine.start_work(assigned_job.pk, worker2)


def test_start_work_twice_is_illegal(assigned_job, worker):
    job_machine.start_work(assigned_job.pk, worker)
    with pytest.raises(IllegalTransition):
        job_machine.start_work(assigned_job.pk, worker)


def test_submit_for_review_from_assigned_passes_through_in_progress(assigned_job, worker):
    job = job_machine.submit_for_review(assigned_job.pk, worker)
    assert job.status == JobStatus.AWAITING_COMPLETION


def test_submit_for_review_on_posted_job_is_rejected(posted_job, worker):
    with pytest.raises(Unauthorized):
        job_machine.submit_for_review(posted_job.pk, worker)


def test_request_revision_and_resubmit(submitted_job, client_user, worker):
    job = job_machine.request_revision(submitted_job.pk, client_user, 'missing section 3')
    assert job.status == JobStatus.REVISION_REQUESTED
    assert job.revision_count == 1
    revision = job.revisions.get()
    assert revision.reason == 'missing section 3'
    assert revision.resolved_at is None

    job = job_machine.resubmit(submitted_job.pk, worker)
    assert job.status == JobStatus.IN_PROGRESS
    assert job.revision_count == 1
    revision.refresh_from_db()
    assert revision.resolved_at is not None

    job = job_machine.submit_for_review(submitted_job.pk, worker)
    assert job.status == JobStatus.AWAITING_COMPLETION


@pytest.mark.parametrize('reason', ['', '   ', None])
def test_request_revision_requires_reason(submitted_job, client_user, reason):
    with pytest.raises(InvalidArgument):
        job_machine.request_revision(submitted_job.pk, client_user, reason)
    assert Job.objects.get(pk=submitted_job.pk).status == JobStatus.AWAITING_COMPLETION


def test_request_revision_only_by_owner(submitted_job, worker):
    with pytest.raises(Unauthorized):
        job_machine.request_revision(submitted_job.pk, worker, 'Please redo')


def test_request_revision_from_in_progress_is_illegal(assigned_job, client_user, worker):
    job_machine.start_work(assigned_job.pk, worker)
    with pytest.raises(IllegalTransition):
        job_machine.request_revision(assigned_job.pk, client_user, 'Not yet')


def test_request_revision_after_settlement_started_is_illegal(pending_payment, client_user):
    with pytest.raises(IllegalTransition):
        job_machine.request_revision(pending_payment.job_id, client_user, 'One more change')


def test_revision_limit(submitted_job, client_user, worker, settings):
    settings.REVISION_LIMIT = 1
    job_machine.request_revision(submitted_job.pk, client_user, 'First round')
    job_machine.resubmit(submitted_job.pk, worker)
    job_machine.submit_for_review(submitted_job.pk, worker)

    with pytest.raises(IllegalTransition, match='dispute'):
        job_machine.request_revision(submitted_job.pk, client_user, 'Second round')
    assert Job.objects.get(pk=submitted_job.pk).revision_count == 1


def test_cancel_posted_job_rejects_pending_applications(posted_job, client_user, worker, worker2,
                                                        django_capture_on_commit_callbacks):
    ledger.submit(posted_job.pk, worker, '700')
    ledger.submit(posted_job.pk, worker2, '800')

    with django_capture_on_commit_callbacks(execute=True):
        job = job_machine.cancel(posted_job.pk, client_user, 'Found someone else')

    assert job.status == JobStatus.CANCELLED
    assert job.cancellation_reason == 'Found someone else'
    assert not Application.objects.filter(job=job, status=ApplicationStatus.PENDING).exists()
    assert Notification.objects.filter(notification_type='job_cancelled').count() == 2


def test_cancel_by_stranger(posted_job, other_client):
    with pytest.raises(Unauthorized):
        job_machine.cancel(posted_job.pk, other_client)


def test_admin_cancel_is_logged(assigned_job, hr_admin):
    job = job_machine.cancel(assigned_job.pk, hr_admin, 'Policy violation')
    assert job.status == JobStatus.CANCELLED
    assert ManagementLog.objects.filter(admin=hr_admin, action='cancel_job').exists()


def test_cancel_terminal_job_is_illegal(completed_job, client_user):
    with pytest.raises(IllegalTransition):
        job_machine.cancel(completed_job.pk, client_user)


def test_cancel_with_payment_in_flight_is_illegal(manual_review_payment, client_user):
    with pytest.raises(IllegalTransition):
        job_machine.cancel(manual_review_payment.job_id, client_user)
    assert Job.objects.get(pk=manual_review_payment.job_id).status == JobStatus.AWAITING_COMPLETION


def test_complete_requires_settled_payment(pending_payment):
    with pytest.raises(IllegalTransition):
        job_machine.complete(pending_payment.job, pending_payment)


def test_completed_jobs_always_have_a_settled_payment(completed_job):
    for job in Job.objects.filter(status=JobStatus.COMPLETED):
        assert Payment.objects.filter(job=job, status=PaymentStatus.SETTLED).exists()


def test_rate_both_directions(completed_job, client_user, worker):
    review = job_machine.rate(completed_job.pk, client_user, 5, 'Great work')
    assert review.reviewee == worker
    assert review.direction == ReviewDirection.CLIENT_TO_WORKER

    review = job_machine.rate(completed_job.pk, worker, '4')
    assert review.reviewee == client_user
    assert review.direction == ReviewDirection.WORKER_TO_CLIENT

    stats = worker.get_rating_stats()
    assert stats['total_ratings'] == 1
    assert stats['average_rating'] == 5.0


def test_rate_twice_is_invalid_state(completed_job, client_user):
    job_machine.rate(completed_job.pk, client_user, 5)
    with pytest.raises(InvalidState):
        job_machine.rate(completed_job.pk, client_user, 3)
    assert Review.objects.filter(job=completed_job).count() == 1


@pytest.mark.parametrize('rating', [0, 6, 'great'])
def test_rate_validates_rating(completed_job, client_user, rating):
    with pytest.raises(InvalidArgument):
        job_machine.rate(completed_job.pk, client_user, rating)


def test_rate_incomplete_job_is_illegal(submitted_job, client_user):
    with pytest.raises(IllegalTransition):
        job_machine.rate(submitted_job.pk, client_user, 5)


def test_rate_by_outsider(completed_job, worker2):
    with pytest.raises(Unauthorized):
        job_machine.rate(completed_job.pk, worker2, 5)


def test_overdue_is_informational(make_job):
    job = make_job(deadline=timezone.now() - timedelta(days=1))
    assert job.is_overdue
    assert Job.objects.get(pk=job.pk).status == JobStatus.POSTED
