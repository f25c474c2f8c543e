"""
Job lifecycle.

posted -> assigned -> in_progress -> awaiting_completion -> completed
                          ^                   |
                          +-- revision_requested

``cancelled`` is reachable from every non-terminal state. Being disputed is
the orthogonal ``Job.has_active_dispute`` flag and never rewrites ``status``.
``completed`` is entered only through ``complete()``, which the payment and
dispute trackers call once a payment has settled.

Every public operation locks the job row for the duration of its
transaction and returns the authoritative post-transition Job.
"""
import logging
from decimal import Decimal, InvalidOperation
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from core.constants import (
    JobStatus, ApplicationStatus, PaymentStatus, ReviewDirection, NotificationPriority,
    JOB_TRANSITIONS, TERMINAL_PAYMENT_STATUSES,
)
from core.exceptions import IllegalTransition, InvalidArgument, InvalidState, Unauthorized
from core.utils import check_transition, get_or_not_found
from apps.management.models import ManagementLog
from apps.notifications import dispatcher
from .models import Job, Application, Revision, Review

logger = logging.getLogger(__name__)


def lock_job(job_id):
    """Fetch a job holding its row lock until the current transaction ends."""
    return get_or_not_found(Job.objects.select_for_update(), 'Job', pk=job_id)


def parse_amount(value, field='amount'):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgument(f"{field} must be a decimal number")
    if not amount.is_finite() or amount <= 0:
        raise InvalidArgument(f"{field} must be greater than zero")
    return amount.quantize(Decimal('0.01'))


def has_active_payment(job):
    return job.payments.exclude(status__in=TERMINAL_PAYMENT_STATUSES).exists()


class JobStateMachine:

    def post(self, client, title, description, budget, deadline, currency=None):
        if not client.is_client:
            raise Unauthorized("Only clients can post jobs")
        if not title or not str(title).strip():
            raise InvalidArgument("title is required")
        if deadline is None:
            raise InvalidArgument("deadline is required")
        job = Job.objects.create(
            client=client,
            title=title.strip(),
            description=description or '',
            budget=parse_amount(budget, 'budget'),
            currency=currency or settings.DEFAULT_CURRENCY,
            deadline=deadline,
        )
        logger.info(f"Client {client.id} posted job {job.id}")
        return job

    @transaction.atomic
    def start_work(self, job_id, actor):
        job = lock_job(job_id)
        self._require_worker(job, actor)
        self._advance(job, JobStatus.IN_PROGRESS)
        dispatcher.send(
            [job.client_id],
            f"Work Started: {job.title}",
            f"{actor.get_full_name() or actor.username} has started working on '{job.title}'.",
            metadata={'job_id': job.id},
            notification_type='job_started',
        )
        return job

    @transaction.atomic
    def submit_for_review(self, job_id, actor):
        job = lock_job(job_id)
        self._require_worker(job, actor)
        if job.status == JobStatus.ASSIGNED:
            # Assignment and start of work are the same edge.
            self._advance(job, JobStatus.IN_PROGRESS)
        self._advance(job, JobStatus.AWAITING_COMPLETION)
        dispatcher.send(
            [job.client_id],
            f"Job Submitted for Review: {job.title}",
            f"The worker has submitted '{job.title}'. Please review it and either "
            f"request a revision or settle the payment.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id},
            notification_type='job_submitted',
        )
        return job

    @transaction.atomic
    def request_revision(self, job_id, actor, reason):
        job = lock_job(job_id)
        self._require_client(job, actor)
        if reason is None or not str(reason).strip():
            raise InvalidArgument("A revision reason is required")
        check_transition(JOB_TRANSITIONS, job.status, JobStatus.REVISION_REQUESTED)
        if has_active_payment(job):
            raise IllegalTransition("Settlement has already started for this job")
        limit = settings.REVISION_LIMIT
        if limit and job.revision_count >= limit:
            raise IllegalTransition(
                f"Revision limit of {limit} reached for this job; open a dispute instead"
            )
        Revision.objects.create(job=job, requested_by=actor, reason=str(reason).strip())
        job.revision_count += 1
        self._advance(job, JobStatus.REVISION_REQUESTED, extra_fields=['revision_count'])
        dispatcher.send(
            [job.assigned_worker_id],
            f"Revision Requested: {job.title}",
            f"The client has requested revisions for '{job.title}'. Reason: {reason}",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'revision_count': job.revision_count},
            notification_type='revision_requested',
        )
        return job

    @transaction.atomic
    def resubmit(self, job_id, actor):
        job = lock_job(job_id)
        self._require_worker(job, actor)
        self._advance(job, JobStatus.IN_PROGRESS)
        job.revisions.filter(resolved_at__isnull=True).update(resolved_at=timezone.now())
        dispatcher.send(
            [job.client_id],
            f"Revision In Progress: {job.title}",
            f"The worker is working on your requested revision for '{job.title}'.",
            metadata={'job_id': job.id, 'revision_count': job.revision_count},
            notification_type='revision_in_progress',
        )
        return job

    def complete(self, job, payment):
        """Finalize a job whose payment has settled. Caller holds the job lock."""
        if payment.job_id != job.pk or payment.status != PaymentStatus.SETTLED:
            raise IllegalTransition("A job completes only once its payment is settled")
        job.completed_at = timezone.now()
        self._advance(job, JobStatus.COMPLETED, extra_fields=['completed_at'])
        dispatcher.send(
            [job.client_id, job.assigned_worker_id],
            f"Job Completed: {job.title}",
            f"'{job.title}' is complete and its payment of {payment.amount} {payment.currency} "
            f"has been settled. You can now leave a review.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='job_completed',
        )
        return job

    @transaction.atomic
    def cancel(self, job_id, actor, reason=''):
        job = lock_job(job_id)
        if actor.pk != job.client_id and not actor.is_platform_admin:
            raise Unauthorized("Only the job owner or an admin can cancel this job")
        check_transition(JOB_TRANSITIONS, job.status, JobStatus.CANCELLED)
        if has_active_payment(job):
            raise IllegalTransition("Cannot cancel a job while its payment is in flight; open a dispute")
        self.cancel_locked(job, reason or f"Cancelled by {actor.username}")
        if actor.pk != job.client_id:
            ManagementLog.record(actor, 'cancel_job', f"Cancelled job {job.id}: {job.cancellation_reason}")
        return job

    def cancel_locked(self, job, reason):
        """Cancel a job whose row lock the caller already holds."""
        job.cancelled_at = timezone.now()
        job.cancellation_reason = reason
        self._advance(job, JobStatus.CANCELLED, extra_fields=['cancelled_at', 'cancellation_reason'])
        pending = job.applications.filter(status=ApplicationStatus.PENDING)
        applicant_ids = list(pending.values_list('worker_id', flat=True))
        pending.update(status=ApplicationStatus.REJECTED, responded_at=timezone.now())
        dispatcher.send(
            [job.assigned_worker_id] + applicant_ids,
            f"Job Cancelled: {job.title}",
            f"The job '{job.title}' has been cancelled. Reason: {reason}",
            metadata={'job_id': job.id},
            notification_type='job_cancelled',
        )
        return job

    @transaction.atomic
    def rate(self, job_id, actor, rating, comment=''):
        job = lock_job(job_id)
        if job.status != JobStatus.COMPLETED:
            raise IllegalTransition("Only completed jobs can be reviewed")
        if actor.pk == job.client_id:
            reviewee, direction = job.assigned_worker, ReviewDirection.CLIENT_TO_WORKER
        elif actor.pk == job.assigned_worker_id:
            reviewee, direction = job.client, ReviewDirection.WORKER_TO_CLIENT
        else:
            raise Unauthorized("Only the client or the assigned worker can review this job")
        try:
            rating = int(rating)
        except (TypeError, ValueError):
            raise InvalidArgument("rating must be an integer between 1 and 5")
        if not 1 <= rating <= 5:
            raise InvalidArgument("rating must be an integer between 1 and 5")
        if Review.objects.filter(job=job, reviewer=actor).exists():
            raise InvalidState("You have already reviewed this job")
        try:
            with transaction.atomic():
                review = Review.objects.create(
                    job=job, reviewer=actor, reviewee=reviewee, direction=direction,
                    rating=rating, comment=comment or '',
                )
        except IntegrityError:
            raise InvalidState("You have already reviewed this job")
        dispatcher.send(
            [reviewee.pk],
            "New Review Received",
            f"{actor.get_full_name() or actor.username} left you a {rating}-star review for '{job.title}'.",
            metadata={'job_id': job.id, 'review_id': review.id},
            notification_type='review_received',
        )
        return review

    def _advance(self, job, target, extra_fields=()):
        check_transition(JOB_TRANSITIONS, job.status, target)
        previous = job.status
        job.status = target
        job.save(update_fields=['status', 'updated_at', *extra_fields])
        logger.info(f"Job {job.id}: {previous} -> {target}")
        return job

    def _require_worker(self, job, actor):
        if job.assigned_worker_id is None or actor.pk != job.assigned_worker_id:
            raise Unauthorized("Only the assigned worker can perform this action")

    def _require_client(self, job, actor):
        if actor.pk != job.client_id:
            raise Unauthorized("Only the job owner can perform this action")


job_machine = JobStateMachine()
