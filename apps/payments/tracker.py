"""
Payment settlement.

pending --gateway ok--> settled
pending --gateway failed/unavailable--> manual_review --proof accepted--> settled
manual_review --proof rejected--> manual_review (payer re-uploads)

``is_held`` freezes a payment in place while a dispute against its job is
active. Settlement is idempotent: a settled payment is returned untouched.
Locks are always taken job first, then payment.
"""
import logging
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from core.constants import (
    PaymentStatus, PaymentMethod, ProofStatus, ProofDecision, DisputeOutcome, JobStatus,
    UserRole, NotificationPriority, PAYMENT_TRANSITIONS, TERMINAL_PAYMENT_STATUSES,
)
from core.exceptions import (
    DuplicatePayment, IllegalTransition, InvalidArgument, PaymentHeld, Unauthorized,
)
from core.utils import check_transition, get_or_not_found
from apps.jobs.state_machine import job_machine, lock_job, parse_amount, has_active_payment
from apps.management.models import ManagementLog
from apps.notifications import dispatcher
from apps.users.models import User
from .gateway import GatewayResult, GatewayUnavailable, get_gateway
from .models import Payment
from .storage import BlobStore

logger = logging.getLogger(__name__)


class PaymentSettlementTracker:

    def __init__(self, gateway=None, blob_store=None):
        self._gateway = gateway
        self.blob_store = blob_store or BlobStore()

    @property
    def gateway(self):
        return self._gateway or get_gateway()

    @transaction.atomic
    def initiate(self, job_id, actor, amount=None):
        job = lock_job(job_id)
        if actor.pk != job.client_id:
            raise Unauthorized("Only the job owner can settle payment")
        if has_active_payment(job):
            raise DuplicatePayment("A payment is already in progress for this job")
        if job.status != JobStatus.AWAITING_COMPLETION:
            raise IllegalTransition("Payment can only be settled for a job awaiting completion")
        if amount is None:
            application = job.accepted_application
            amount = application.proposed_budget if application else job.budget
        amount = parse_amount(amount)
        payment = Payment.objects.create(
            job=job,
            payer=job.client,
            payee=job.assigned_worker,
            amount=amount,
            original_amount=amount,
            currency=job.currency,
            is_held=job.has_active_dispute,
        )
        logger.info(f"Payment {payment.id} initiated for job {job.id}: {amount} {payment.currency}")
        return payment

    @transaction.atomic
    def attempt_gateway_settlement(self, payment_id):
        job, payment = self._lock(payment_id)
        if payment.status == PaymentStatus.SETTLED:
            return payment
        if payment.is_held:
            raise PaymentHeld("Payment is held by an open dispute")
        if payment.status != PaymentStatus.PENDING:
            raise IllegalTransition(f"Gateway settlement is not possible from '{payment.status}'")

        try:
            result = self.gateway.charge(payment.amount, payment.currency, payment.payer, payment.payee)
        except GatewayUnavailable as e:
            logger.warning(f"Gateway unavailable for payment {payment.id}, falling back to manual review: {str(e)}")
            result = GatewayResult(False, None, f"Gateway unavailable: {str(e)}")

        if result.success:
            payment.gateway_reference = result.reference
            self._settle(job, payment, method=PaymentMethod.GATEWAY)
            return payment

        logger.warning(f"Gateway settlement failed for payment {payment.id}: {result.reason}")
        check_transition(PAYMENT_TRANSITIONS, payment.status, PaymentStatus.MANUAL_REVIEW, 'payment')
        payment.status = PaymentStatus.MANUAL_REVIEW
        payment.method = PaymentMethod.MANUAL_PROOF
        payment.gateway_reference = result.reference
        payment.failure_reason = result.reason or ''
        payment.save(update_fields=['status', 'method', 'gateway_reference', 'failure_reason', 'updated_at'])
        dispatcher.send(
            [payment.payer_id],
            "Payment Pending Manual Review",
            f"Automatic payment for '{job.title}' could not be completed. "
            f"Please upload proof of payment of {payment.amount} {payment.currency}.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='payment_manual_review',
        )
        return payment

    @transaction.atomic
    def submit_proof(self, payment_id, actor, blob_ref, note=''):
        job, payment = self._lock(payment_id)
        if actor.pk != payment.payer_id:
            raise Unauthorized("Only the payer can upload proof for this payment")
        if not blob_ref:
            raise InvalidArgument("A proof of payment is required")
        if payment.is_held:
            raise PaymentHeld("Payment is held by an open dispute")
        if payment.status != PaymentStatus.MANUAL_REVIEW:
            raise IllegalTransition("Proof can only be submitted while the payment is in manual review")
        payment.proof_ref = blob_ref
        payment.proof_note = note or ''
        payment.proof_status = ProofStatus.SUBMITTED
        payment.save(update_fields=['proof_ref', 'proof_note', 'proof_status', 'updated_at'])
        logger.info(f"Proof submitted for payment {payment.id}")
        dispatcher.send(
            list(User.admins_for(UserRole.FINANCE_ADMIN).values_list('pk', flat=True)),
            "Payment Proof Awaiting Verification",
            f"A proof of payment of {payment.amount} {payment.currency} for '{job.title}' was uploaded.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='payment_proof_submitted',
        )
        return payment

    def store_proof(self, data, filename=None):
        return self.blob_store.store(data, filename)

    @transaction.atomic
    def verify_proof(self, payment_id, actor, decision, note=''):
        if not actor.is_finance_admin:
            raise Unauthorized("Only finance admins can verify payment proofs")
        if decision not in ProofDecision.values:
            raise InvalidArgument("decision must be 'accept' or 'reject'")
        job, payment = self._lock(payment_id)
        if decision == ProofDecision.ACCEPT and payment.status == PaymentStatus.SETTLED \
                and payment.proof_status == ProofStatus.ACCEPTED:
            return payment
        if payment.is_held:
            raise PaymentHeld("Payment is held by an open dispute")
        if payment.status != PaymentStatus.MANUAL_REVIEW:
            raise IllegalTransition(f"Proof cannot be verified while the payment is '{payment.status}'")
        if payment.proof_status != ProofStatus.SUBMITTED:
            raise IllegalTransition("No proof is awaiting verification")

        if decision == ProofDecision.ACCEPT:
            payment.proof_status = ProofStatus.ACCEPTED
            self._settle(job, payment, method=PaymentMethod.MANUAL_PROOF)
            ManagementLog.record(actor, 'accept_payment_proof', f"Accepted proof for payment {payment.id}")
            return payment

        payment.proof_status = ProofStatus.REJECTED
        payment.proof_rejections += 1
        payment.save(update_fields=['proof_status', 'proof_rejections', 'updated_at'])
        ManagementLog.record(
            actor, 'reject_payment_proof', f"Rejected proof for payment {payment.id}: {note or 'no reason given'}"
        )
        dispatcher.send(
            [payment.payer_id],
            "Payment Proof Rejected",
            f"Your proof of payment for '{job.title}' was rejected. "
            f"{('Reason: ' + note + '. ') if note else ''}Please upload a new proof.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='payment_proof_rejected',
        )
        limit = settings.PROOF_REJECTION_LIMIT
        if limit and payment.proof_rejections >= limit and not job.has_active_dispute:
            from apps.disputes.tracker import dispute_tracker
            dispute_tracker.escalate(
                job,
                f"Payment proof for payment {payment.id} rejected {payment.proof_rejections} times",
            )
            payment.refresh_from_db()
        return payment

    def active_payment_for(self, job):
        return job.payments.exclude(status__in=TERMINAL_PAYMENT_STATUSES).first()

    # Dispute hooks. The caller holds the job lock.

    def hold(self, job):
        payment = job.payments.select_for_update().exclude(status__in=TERMINAL_PAYMENT_STATUSES).first()
        if payment and not payment.is_held:
            payment.is_held = True
            payment.save(update_fields=['is_held', 'updated_at'])
            logger.info(f"Payment {payment.id} held for dispute on job {job.id}")
        return payment

    def release_hold(self, job):
        payment = job.payments.select_for_update().filter(is_held=True).first()
        if payment:
            payment.is_held = False
            payment.save(update_fields=['is_held', 'updated_at'])
            logger.info(f"Payment {payment.id} released from hold on job {job.id}")
        return payment

    def apply_resolution(self, job, payment, outcome, amount=None):
        """Apply a dispute outcome to the job's payment."""
        if outcome == DisputeOutcome.PARTIAL:
            amount = parse_amount(amount)
            if amount > payment.original_amount:
                raise InvalidArgument("Partial amount cannot exceed the original payment amount")
        if outcome == DisputeOutcome.REFUND and payment.status == PaymentStatus.SETTLED:
            raise IllegalTransition("A settled payment cannot be refunded; release it or pay it partially")

        payment.is_held = False
        payment.resolution_outcome = outcome
        if payment.status == PaymentStatus.REFUNDED:
            payment.save(update_fields=['is_held', 'resolution_outcome', 'updated_at'])
            return payment

        if outcome == DisputeOutcome.REFUND:
            check_transition(PAYMENT_TRANSITIONS, payment.status, PaymentStatus.REFUNDED, 'payment')
            payment.status = PaymentStatus.REFUNDED
            payment.refunded_at = timezone.now()
            payment.save(update_fields=['status', 'refunded_at', 'is_held', 'resolution_outcome', 'updated_at'])
            logger.info(f"Payment {payment.id} refunded by dispute resolution")
            job_machine.cancel_locked(job, "Payment refunded after dispute")
            return payment

        if outcome == DisputeOutcome.PARTIAL:
            payment.amount = amount

        if payment.status == PaymentStatus.SETTLED:
            payment.save(update_fields=['amount', 'is_held', 'resolution_outcome', 'updated_at'])
            logger.info(f"Settled payment {payment.id} adjusted by dispute resolution ({outcome})")
            return payment

        self._settle(job, payment, method=PaymentMethod.DISPUTE_RESOLUTION)
        return payment

    def _settle(self, job, payment, method=None):
        check_transition(PAYMENT_TRANSITIONS, payment.status, PaymentStatus.SETTLED, 'payment')
        payment.status = PaymentStatus.SETTLED
        payment.settled_at = timezone.now()
        if method:
            payment.method = method
        payment.save()
        logger.info(f"Payment {payment.id} settled via {payment.method}: {payment.amount} {payment.currency}")
        dispatcher.send(
            [payment.payer_id],
            "Payment Processed",
            f"Your payment of {payment.amount} {payment.currency} for '{job.title}' has been processed.",
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='payment_processed',
        )
        dispatcher.send(
            [payment.payee_id],
            "Payment Received",
            f"You have received {payment.amount} {payment.currency} for '{job.title}'.",
            priority=NotificationPriority.HIGH,
            metadata={'job_id': job.id, 'payment_id': payment.id},
            notification_type='payment_received',
        )
        if job.status != JobStatus.COMPLETED:
            job_machine.complete(job, payment)
        return payment

    def _lock(self, payment_id):
        job_id = get_or_not_found(Payment.objects.all(), 'Payment', pk=payment_id).job_id
        job = lock_job(job_id)
        payment = Payment.objects.select_for_update().select_related('payer', 'payee').get(pk=payment_id)
        return job, payment


payment_tracker = PaymentSettlementTracker()
