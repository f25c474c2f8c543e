# core/constants.py
from django.db import models


class UserRole(models.TextChoices):
    CLIENT = 'client', 'Client'
    WORKER = 'worker', 'Worker'
    HR_ADMIN = 'admin_hr', 'HR Admin'
    FINANCE_ADMIN = 'admin_outsource', 'Outsource/Finance Admin'
    SUPER_ADMIN = 'super_admin', 'Super Admin'


class JobStatus(models.TextChoices):
    POSTED = 'posted', 'Posted'                                  # Open for applications
    ASSIGNED = 'assigned', 'Assigned'                            # An application was accepted
    IN_PROGRESS = 'in_progress', 'In Progress'                   # Worker is executing
    AWAITING_COMPLETION = 'awaiting_completion', 'Awaiting Completion'  # Worker submitted for review
    REVISION_REQUESTED = 'revision_requested', 'Revision Requested'
    COMPLETED = 'completed', 'Completed'                         # Payment settled
    CANCELLED = 'cancelled', 'Cancelled'


class ApplicationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class PaymentStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    MANUAL_REVIEW = 'manual_review', 'Manual Review'
    SETTLED = 'settled', 'Settled'
    REFUNDED = 'refunded', 'Refunded'


class PaymentMethod(models.TextChoices):
    GATEWAY = 'gateway', 'Gateway'
    MANUAL_PROOF = 'manual_proof', 'Manual Proof'
    DISPUTE_RESOLUTION = 'dispute', 'Dispute Resolution'


class ProofStatus(models.TextChoices):
    NONE = 'none', 'None'
    SUBMITTED = 'submitted', 'Submitted'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class ProofDecision(models.TextChoices):
    ACCEPT = 'accept', 'Accept'
    REJECT = 'reject', 'Reject'


class DisputeStatus(models.TextChoices):
    OPEN = 'open', 'Open'
    INVESTIGATING = 'investigating', 'Investigating'
    RESOLVED = 'resolved', 'Resolved'
    CLOSED = 'closed', 'Closed'


class DisputeOutcome(models.TextChoices):
    REFUND = 'refund', 'Refund'
    RELEASE = 'release', 'Release'
    PARTIAL = 'partial', 'Partial'
    NONE = 'none', 'None'


class DisputeType(models.TextChoices):
    PAYMENT = 'payment', 'Payment Issue'
    QUALITY = 'quality', 'Quality of Work'
    COMMUNICATION = 'communication', 'Communication'
    DEADLINE = 'deadline', 'Deadline'
    SCOPE = 'scope', 'Scope'
    OTHER = 'other', 'Other'


class DisputePriority(models.TextChoices):
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'
    URGENT = 'urgent', 'Urgent'


class EvidenceKind(models.TextChoices):
    IMAGE = 'image', 'Image'
    DOCUMENT = 'document', 'Document'
    MESSAGE = 'message', 'Message'


class InitiatorRole(models.TextChoices):
    CLIENT = 'client', 'Client'
    WORKER = 'worker', 'Worker'
    ADMIN = 'admin', 'Admin'
    SYSTEM = 'system', 'System'


class ReviewDirection(models.TextChoices):
    CLIENT_TO_WORKER = 'client_to_worker', 'Client to Worker'
    WORKER_TO_CLIENT = 'worker_to_client', 'Worker to Client'


class NotificationPriority(models.TextChoices):
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'
    URGENT = 'urgent', 'Urgent'


class DeliveryStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    SENT = 'sent', 'Sent'
    FAILED = 'failed', 'Failed'


# Allowed edges of the job lifecycle; anything absent is an illegal transition.
JOB_TRANSITIONS = {
    JobStatus.POSTED: {JobStatus.ASSIGNED, JobStatus.CANCELLED},
    JobStatus.ASSIGNED: {JobStatus.IN_PROGRESS, JobStatus.CANCELLED},
    JobStatus.IN_PROGRESS: {JobStatus.AWAITING_COMPLETION, JobStatus.CANCELLED},
    JobStatus.AWAITING_COMPLETION: {
        JobStatus.REVISION_REQUESTED, JobStatus.COMPLETED, JobStatus.CANCELLED,
    },
    JobStatus.REVISION_REQUESTED: {JobStatus.IN_PROGRESS, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.SETTLED, PaymentStatus.MANUAL_REVIEW, PaymentStatus.REFUNDED},
    PaymentStatus.MANUAL_REVIEW: {PaymentStatus.SETTLED, PaymentStatus.REFUNDED},
    # A completed job keeps its settled payment; disputes may only adjust the amount.
    PaymentStatus.SETTLED: set(),
    PaymentStatus.REFUNDED: set(),
}

DISPUTE_TRANSITIONS = {
    DisputeStatus.OPEN: {DisputeStatus.INVESTIGATING, DisputeStatus.RESOLVED, DisputeStatus.CLOSED},
    DisputeStatus.INVESTIGATING: {DisputeStatus.RESOLVED, DisputeStatus.CLOSED},
    DisputeStatus.RESOLVED: {DisputeStatus.CLOSED},
    DisputeStatus.CLOSED: set(),
}

TERMINAL_JOB_STATUSES = {JobStatus.COMPLETED, JobStatus.CANCELLED}
TERMINAL_PAYMENT_STATUSES = {PaymentStatus.SETTLED, PaymentStatus.REFUNDED}
ACTIVE_DISPUTE_STATUSES = {DisputeStatus.OPEN, DisputeStatus.INVESTIGATING}

# Job states against which a dispute may be raised.
DISPUTABLE_JOB_STATUSES = {
    JobStatus.ASSIGNED,
    JobStatus.IN_PROGRESS,
    JobStatus.AWAITING_COMPLETION,
    JobStatus.REVISION_REQUESTED,
    JobStatus.COMPLETED,
}
