from django.db import models
from django.conf import settings
from core.constants import (
    DisputeStatus, DisputeOutcome, DisputeType, DisputePriority, EvidenceKind, InitiatorRole,
    ACTIVE_DISPUTE_STATUSES,
)


class Dispute(models.Model):
    job = models.ForeignKey('jobs.Job', on_delete=models.CASCADE, related_name='disputes')
    payment = models.ForeignKey(
        'payments.Payment', on_delete=models.SET_NULL, null=True, blank=True, related_name='disputes'
    )
    # Null when the platform itself escalated the job.
    initiator = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='disputes_opened'
    )
    initiator_role = models.CharField(max_length=10, choices=InitiatorRole.choices)
    title = models.CharField(max_length=200)
    dispute_type = models.CharField(max_length=20, choices=DisputeType.choices, default=DisputeType.OTHER)
    priority = models.CharField(max_length=10, choices=DisputePriority.choices, default=DisputePriority.MEDIUM)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=DisputeStatus.choices, default=DisputeStatus.OPEN)
    outcome = models.CharField(max_length=10, choices=DisputeOutcome.choices, blank=True, default='')
    partial_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    resolution_note = models.TextField(blank=True, default='')
    hr_notes = models.TextField(blank=True, default='')
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='disputes_resolved'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['job', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"Dispute {self.id} on {self.job.title} ({self.status})"

    @property
    def is_active(self):
        return self.status in ACTIVE_DISPUTE_STATUSES


class DisputeEvidence(models.Model):
    dispute = models.ForeignKey(Dispute, on_delete=models.CASCADE, related_name='evidence')
    kind = models.CharField(max_length=10, choices=EvidenceKind.choices)
    # Blob reference for images and documents, empty for messages
    blob_ref = models.CharField(max_length=255, blank=True, default='')
    description = models.TextField(blank=True, default='')
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='dispute_evidence'
    )
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['uploaded_at', 'id']

    def __str__(self):
        return f"{self.get_kind_display()} evidence on dispute {self.dispute_id}"
