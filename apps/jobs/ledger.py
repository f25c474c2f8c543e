import logging
from django.db import transaction
from django.utils import timezone
from core.constants import JobStatus, ApplicationStatus, NotificationPriority, JOB_TRANSITIONS
from core.exceptions import (
    AlreadyAssigned, DuplicateApplication, IllegalTransition, InvalidState, Unauthorized,
)
from core.utils import check_transition, get_or_not_found
from apps.notifications import dispatcher
from .models import Job, Application
from .state_machine import lock_job, parse_amount

logger = logging.getLogger(__name__)


class ApplicationLedger:
    """Worker proposals against a posted job, and the client's single acceptance."""

    @transaction.atomic
    def submit(self, job_id, worker, proposed_budget, proposal=''):
        if not worker.is_worker:
            raise Unauthorized("Only workers can apply to jobs")
        proposed_budget = parse_amount(proposed_budget, 'proposed_budget')
        job = self._lock_job(job_id)
        if job.status != JobStatus.POSTED:
            raise InvalidState("Job is no longer accepting applications")
        if job.applications.filter(worker=worker).exclude(status=ApplicationStatus.REJECTED).exists():
            raise DuplicateApplication("You have already applied for this job")
        application = Application.objects.create(
            job=job, worker=worker, proposed_budget=proposed_budget, proposal=proposal or '',
        )
        logger.info(f"Worker {worker.id} applied to job {job.id}")
        dispatcher.send(
            [job.client_id],
            f"New Application for Job: {job.title}",
            f"{worker.get_full_name() or worker.username} has applied for your job '{job.title}' "
            f"proposing {proposed_budget} {job.currency}.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'application_id': application.id},
            notification_type='job_application',
        )
        return application

    @transaction.atomic
    def accept(self, job_id, application_id, actor):
        job = self._lock_job(job_id)
        if actor.pk != job.client_id:
            raise Unauthorized("Only the job owner can accept applications")
        if job.status == JobStatus.CANCELLED:
            raise IllegalTransition("Cannot accept applications for a cancelled job")
        if job.status != JobStatus.POSTED or job.assigned_worker_id is not None:
            raise AlreadyAssigned("Job already has an assigned worker")
        application = get_or_not_found(
            Application.objects.select_for_update(), 'Application', pk=application_id, job_id=job.pk
        )
        check_transition(JOB_TRANSITIONS, JobStatus.POSTED, JobStatus.ASSIGNED)

        # Compare-and-swap: only one accept can move the job out of 'posted'.
        now = timezone.now()
        claimed = Job.objects.filter(
            pk=job.pk, status=JobStatus.POSTED, assigned_worker__isnull=True,
        ).update(
            status=JobStatus.ASSIGNED,
            assigned_worker=application.worker,
            accepted_application=application,
            updated_at=now,
        )
        if not claimed:
            raise AlreadyAssigned("Job already has an assigned worker")
        if application.status != ApplicationStatus.PENDING:
            raise IllegalTransition(f"Application is already {application.status}")

        application.status = ApplicationStatus.ACCEPTED
        application.responded_at = now
        application.save(update_fields=['status', 'responded_at'])

        siblings = job.applications.exclude(pk=application.pk).exclude(status=ApplicationStatus.REJECTED)
        rejected_worker_ids = list(siblings.values_list('worker_id', flat=True))
        siblings.update(status=ApplicationStatus.REJECTED, responded_at=now)
        job.refresh_from_db()
        logger.info(f"Job {job.id}: posted -> assigned (application {application.id}, worker {application.worker_id})")

        dispatcher.send(
            [application.worker_id],
            f"Application Accepted for {job.title}",
            f"Congratulations! Your application for '{job.title}' has been accepted.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'application_id': application.id},
            notification_type='job_assigned',
        )
        dispatcher.send(
            rejected_worker_ids,
            f"Application Not Selected: {job.title}",
            f"Your application for '{job.title}' was not selected this time.",
            metadata={'job_id': job.id},
            notification_type='job_application',
        )
        dispatcher.send(
            [job.client_id],
            f"You Accepted an Application for {job.title}",
            f"You have accepted {application.worker.get_full_name() or application.worker.username}'s "
            f"application for '{job.title}'.",
            metadata={'job_id': job.id, 'application_id': application.id},
            notification_type='job_assigned',
        )
        return job, application

    @transaction.atomic
    def reject(self, job_id, application_id, actor):
        job = self._lock_job(job_id)
        if actor.pk != job.client_id:
            raise Unauthorized("Only the job owner can reject applications")
        application = get_or_not_found(
            Application.objects.select_for_update(), 'Application', pk=application_id, job_id=job.pk
        )
        if application.status != ApplicationStatus.PENDING:
            return application
        application.status = ApplicationStatus.REJECTED
        application.responded_at = timezone.now()
        application.save(update_fields=['status', 'responded_at'])
        dispatcher.send(
            [application.worker_id],
            f"Application Not Selected: {job.title}",
            f"Your application for '{job.title}' was not selected this time.",
            metadata={'job_id': job.id, 'application_id': application.id},
            notification_type='job_application',
        )
        return application

    @transaction.atomic
    def withdraw(self, job_id, worker):
        job = self._lock_job(job_id)
        application = get_or_not_found(
            Application.objects.select_for_update(), 'Pending application',
            job_id=job.pk, worker=worker, status=ApplicationStatus.PENDING,
        )
        application.status = ApplicationStatus.REJECTED
        application.responded_at = timezone.now()
        application.save(update_fields=['status', 'responded_at'])
        dispatcher.send(
            [job.client_id],
            f"Application Withdrawn: {job.title}",
            f"{worker.get_full_name() or worker.username} has withdrawn their application for '{job.title}'.",
            metadata={'job_id': job.id, 'application_id': application.id},
            notification_type='job_application',
        )
        return application

    def applications_for(self, job):
        return job.applications.select_related('worker')

    def _lock_job(self, job_id):
        return lock_job(job_id)


ledger = ApplicationLedger()
