"""
Dispute resolution.

open -> investigating -> resolved -> closed

An active dispute (open or investigating) sets ``Job.has_active_dispute``
and holds the job's in-flight payment. ``resolve`` is the only way into
``resolved`` and is where a dispute's outcome reaches the payment.
"""
import logging
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from core.constants import (
    DisputeStatus, DisputeOutcome, DisputeType, DisputePriority, EvidenceKind, InitiatorRole,
    PaymentStatus, UserRole,
    NotificationPriority, ACTIVE_DISPUTE_STATUSES, DISPUTE_TRANSITIONS, DISPUTABLE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES, TERMINAL_PAYMENT_STATUSES,
)
from core.exceptions import DuplicateDispute, IllegalTransition, InvalidArgument, Unauthorized
from core.utils import check_transition, get_or_not_found
from apps.jobs.state_machine import job_machine, lock_job, parse_amount
from apps.management.models import ManagementLog
from apps.notifications import dispatcher
from apps.payments.models import Payment
from apps.payments.storage import BlobStore
from apps.payments.tracker import payment_tracker
from apps.users.models import User
from .models import Dispute, DisputeEvidence

logger = logging.getLogger(__name__)

RESOLUTION_OUTCOMES = (DisputeOutcome.REFUND, DisputeOutcome.RELEASE, DisputeOutcome.PARTIAL)


class DisputeResolutionTracker:

    def __init__(self, blob_store=None):
        self.blob_store = blob_store or BlobStore(prefix='dispute_evidence')

    @transaction.atomic
    def open(self, job_id, actor, description, dispute_type=DisputeType.OTHER, title='',
             priority=DisputePriority.MEDIUM):
        job = lock_job(job_id)
        if actor.pk == job.client_id:
            role = InitiatorRole.CLIENT
        elif job.assigned_worker_id is not None and actor.pk == job.assigned_worker_id:
            role = InitiatorRole.WORKER
        elif actor.is_hr_admin:
            role = InitiatorRole.ADMIN
        else:
            raise Unauthorized("Only the job's client, its worker or an admin can open a dispute")
        if description is None or not str(description).strip():
            raise InvalidArgument("A dispute description is required")
        if dispute_type not in DisputeType.values:
            raise InvalidArgument(f"Unknown dispute type '{dispute_type}'")
        if priority not in DisputePriority.values:
            raise InvalidArgument(f"Unknown dispute priority '{priority}'")
        title = str(title or '').strip() or f"{DisputeType(dispute_type).label}: {job.title}"
        return self._open_locked(
            job, actor, role, str(description).strip(), dispute_type, title[:200], priority
        )

    def escalate(self, job, description):
        """Open a platform-initiated payment dispute. Caller holds the job lock."""
        dispute = self._open_locked(
            job, None, InitiatorRole.SYSTEM, description, DisputeType.PAYMENT,
            f"Payment proof rejected: {job.title}"[:200], DisputePriority.HIGH,
        )
        logger.warning(f"Job {job.id} escalated to dispute {dispute.id}: {description}")
        return dispute

    @transaction.atomic
    def update_description(self, dispute_id, actor, description):
        """Let a party restate an unresolved dispute."""
        job, dispute = self._lock(dispute_id)
        self._require_party(job, actor)
        self._require_unresolved(dispute)
        if description is None or not str(description).strip():
            raise InvalidArgument("A dispute description is required")
        dispute.description = str(description).strip()
        dispute.save(update_fields=['description', 'updated_at'])
        logger.info(f"Dispute {dispute.id} description updated by {actor.username}")
        return dispute

    @transaction.atomic
    def add_evidence(self, dispute_id, actor, kind, blob_ref='', description=''):
        """
        Append evidence to an unresolved dispute.

        Images and documents carry a blob reference from ``store_evidence``;
        a message carries only its text.
        """
        job, dispute = self._lock(dispute_id)
        self._require_party(job, actor)
        self._require_unresolved(dispute)
        if kind not in EvidenceKind.values:
            raise InvalidArgument(f"Unknown evidence kind '{kind}'")
        description = str(description or '').strip()
        if kind == EvidenceKind.MESSAGE and not description:
            raise InvalidArgument("A message is required")
        if kind != EvidenceKind.MESSAGE and not blob_ref:
            raise InvalidArgument("An evidence file is required")

        evidence = DisputeEvidence.objects.create(
            dispute=dispute,
            kind=kind,
            blob_ref=blob_ref or '',
            description=description,
            uploaded_by=actor,
        )
        dispute.save(update_fields=['updated_at'])
        logger.info(f"{kind} evidence added to dispute {dispute.id} by {actor.username}")

        dispatcher.send(
            [pk for pk in (job.client_id, job.assigned_worker_id) if pk != actor.pk]
            + list(User.admins_for(UserRole.HR_ADMIN).values_list('pk', flat=True)),
            f"New Evidence: {dispute.title}",
            f"{actor.username} added {evidence.get_kind_display().lower()} evidence to the dispute on "
            f"'{job.title}'.",
            metadata={'job_id': job.id, 'dispute_id': dispute.id, 'evidence_id': evidence.id},
            notification_type='dispute_evidence',
        )
        return evidence

    def store_evidence(self, data, filename):
        return self.blob_store.store(data, filename)

    @transaction.atomic
    def set_status(self, dispute_id, status, actor, hr_notes=None):
        if not actor.is_hr_admin:
            raise Unauthorized("Only HR admins can manage disputes")
        if status not in DisputeStatus.values:
            raise InvalidArgument(f"Unknown dispute status '{status}'")
        if status == DisputeStatus.RESOLVED:
            raise IllegalTransition("Disputes are resolved through the resolve action")
        job, dispute = self._lock(dispute_id)
        check_transition(DISPUTE_TRANSITIONS, dispute.status, status, 'dispute')

        was_active = dispute.is_active
        dispute.status = status
        fields = ['status', 'updated_at']
        if status == DisputeStatus.CLOSED:
            dispute.closed_at = timezone.now()
            fields.append('closed_at')
            if was_active:
                # Closed without a ruling: the payment continues where it stopped.
                dispute.outcome = DisputeOutcome.NONE
                fields.append('outcome')
        if hr_notes is not None and str(hr_notes).strip():
            dispute.hr_notes = str(hr_notes).strip()
            fields.append('hr_notes')
        dispute.save(update_fields=fields)
        job.update_dispute_status()
        if was_active and not job.has_active_dispute:
            payment_tracker.release_hold(job)

        logger.info(f"Dispute {dispute.id} moved to {status}")
        ManagementLog.record(actor, 'update_dispute_status', f"Dispute {dispute.id} -> {status}")
        dispatcher.send(
            [job.client_id, job.assigned_worker_id],
            f"Dispute Update: {job.title}",
            f"The dispute on '{job.title}' is now {dispute.get_status_display().lower()}.",
            metadata={'job_id': job.id, 'dispute_id': dispute.id},
            notification_type='dispute_update',
        )
        return dispute

    @transaction.atomic
    def resolve(self, dispute_id, outcome, resolution_note, actor, amount=None):
        if not actor.is_hr_admin:
            raise Unauthorized("Only HR admins can resolve disputes")
        if outcome not in RESOLUTION_OUTCOMES:
            raise InvalidArgument("outcome must be one of: refund, release, partial")
        if resolution_note is None or not str(resolution_note).strip():
            raise InvalidArgument("A resolution note is required")
        if outcome == DisputeOutcome.PARTIAL:
            amount = parse_amount(amount)
        else:
            amount = None

        job, dispute = self._lock(dispute_id)
        check_transition(DISPUTE_TRANSITIONS, dispute.status, DisputeStatus.RESOLVED, 'dispute')

        payment = self._payment_for(job, dispute)
        if payment is not None:
            payment_tracker.apply_resolution(job, payment, outcome, amount)
        else:
            logger.info(f"Dispute {dispute.id} resolved as {outcome} with no payment to adjust")
            if outcome == DisputeOutcome.REFUND and job.status not in TERMINAL_JOB_STATUSES:
                job_machine.cancel_locked(job, f"Refunded by dispute resolution: {str(resolution_note).strip()}")

        dispute.status = DisputeStatus.RESOLVED
        dispute.outcome = outcome
        dispute.partial_amount = amount
        dispute.resolution_note = str(resolution_note).strip()
        dispute.resolved_by = actor
        dispute.resolved_at = timezone.now()
        dispute.payment = payment
        dispute.save()
        job.update_dispute_status()
        if not job.has_active_dispute:
            payment_tracker.release_hold(job)

        logger.info(f"Dispute {dispute.id} on job {job.id} resolved: {outcome}")
        ManagementLog.record(
            actor, 'resolve_dispute',
            f"Resolved dispute {dispute.id} on job {job.id} as {outcome}"
            f"{f' ({amount})' if amount is not None else ''}: {dispute.resolution_note}",
        )
        dispatcher.send(
            [job.client_id, job.assigned_worker_id],
            f"Dispute Resolved: {job.title}",
            f"The dispute on '{job.title}' was resolved ({dispute.get_outcome_display()}). "
            f"{dispute.resolution_note}",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'dispute_id': dispute.id, 'outcome': outcome},
            notification_type='dispute_resolved',
        )
        return dispute

    def disputes_for(self, user):
        return Dispute.objects.filter(
            Q(job__client=user) | Q(job__assigned_worker=user) | Q(initiator=user)
        ).select_related('job').distinct()

    def all_disputes(self, status=None):
        disputes = Dispute.objects.select_related('job', 'initiator', 'payment')
        if status:
            disputes = disputes.filter(status=status)
        return disputes

    def _open_locked(self, job, initiator, role, description, dispute_type, title, priority):
        if job.status not in DISPUTABLE_JOB_STATUSES:
            raise IllegalTransition(f"A dispute cannot be opened on a job that is {job.status}")
        if job.disputes.filter(status__in=ACTIVE_DISPUTE_STATUSES).exists():
            raise DuplicateDispute("This job already has an active dispute")

        payment = payment_tracker.hold(job)
        if payment is None:
            payment = job.payments.filter(status=PaymentStatus.SETTLED).first()
        dispute = Dispute.objects.create(
            job=job,
            payment=payment,
            initiator=initiator,
            initiator_role=role,
            title=title,
            dispute_type=dispute_type,
            priority=priority,
            description=description,
        )
        job.update_dispute_status()
        logger.info(f"Dispute {dispute.id} opened on job {job.id} by {role}")

        dispatcher.send(
            [job.client_id, job.assigned_worker_id],
            f"Dispute Opened: {job.title}",
            f"A dispute has been opened on '{job.title}'. An administrator will review it.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'dispute_id': dispute.id},
            notification_type='dispute_opened',
        )
        dispatcher.send(
            list(User.admins_for(UserRole.HR_ADMIN).values_list('pk', flat=True)),
            f"New Dispute: {job.title}",
            f"{role.capitalize()} opened a {dispute.get_dispute_type_display().lower()} dispute on "
            f"'{job.title}': {description}",
            priority=NotificationPriority.URGENT,
            metadata={'job_id': job.id, 'dispute_id': dispute.id},
            notification_type='dispute_opened',
        )
        return dispute

    def _payment_for(self, job, dispute):
        # A payment initiated after the dispute opened is not linked yet.
        if dispute.payment_id:
            return Payment.objects.select_for_update().get(pk=dispute.payment_id)
        return job.payments.select_for_update().exclude(status__in=TERMINAL_PAYMENT_STATUSES).first()

    def _require_party(self, job, actor):
        if not job.is_party(actor) and not actor.is_hr_admin:
            raise Unauthorized("Only the job's client, its worker or an admin can update this dispute")

    def _require_unresolved(self, dispute):
        if not dispute.is_active:
            raise IllegalTransition(f"Cannot update a {dispute.status} dispute")

    def _lock(self, dispute_id):
        job_id = get_or_not_found(Dispute.objects.all(), 'Dispute', pk=dispute_id).job_id
        job = lock_job(job_id)
        dispute = Dispute.objects.select_for_update().get(pk=dispute_id)
        return job, dispute


dispute_tracker = DisputeResolutionTracker()
