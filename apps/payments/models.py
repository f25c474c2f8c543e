from django.db import models
from django.conf import settings
from core.constants import (
    PaymentStatus, PaymentMethod, ProofStatus, DisputeOutcome,
)


class Payment(models.Model):
    job = models.ForeignKey('jobs.Job', on_delete=models.CASCADE, related_name='payments')
    payer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payments_made')
    payee = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='payments_received')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='ETB')
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.GATEWAY)
    is_held = models.BooleanField(default=False)
    proof_ref = models.CharField(max_length=255, blank=True, null=True)
    proof_note = models.TextField(blank=True, default='')
    proof_status = models.CharField(max_length=20, choices=ProofStatus.choices, default=ProofStatus.NONE)
    proof_rejections = models.PositiveIntegerField(default=0)
    gateway_reference = models.CharField(max_length=100, blank=True, null=True)
    failure_reason = models.TextField(blank=True, default='')
    resolution_outcome = models.CharField(max_length=20, choices=DisputeOutcome.choices, default=DisputeOutcome.NONE)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    settled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['job', 'status']),
            models.Index(fields=['payer', 'status']),
            models.Index(fields=['payee', 'status']),
        ]

    def __str__(self):
        return f"Payment {self.id} of {self.amount} {self.currency} for {self.job.title} ({self.status})"
