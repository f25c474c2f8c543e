from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from core.constants import (
    JobStatus, ApplicationStatus, ReviewDirection, TERMINAL_JOB_STATUSES, ACTIVE_DISPUTE_STATUSES,
)


class Job(models.Model):
    client = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='jobs')
    title = models.CharField(max_length=200)
    description = models.TextField()
    budget = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='ETB')
    deadline = models.DateTimeField()
    status = models.CharField(max_length=30, choices=JobStatus.choices, default=JobStatus.POSTED)
    assigned_worker = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='assigned_jobs'
    )
    accepted_application = models.OneToOneField(
        'Application', on_delete=models.SET_NULL, null=True, blank=True, related_name='accepted_for'
    )
    revision_count = models.PositiveIntegerField(default=0)
    has_active_dispute = models.BooleanField(default=False)
    cancellation_reason = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['client', 'status']),
            models.Index(fields=['assigned_worker', 'status']),
            models.Index(fields=['deadline']),
        ]

    def __str__(self):
        return f"{self.title} - {self.client.username}"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def is_overdue(self):
        """Deadline passed on a live job. Informational only, never acted on."""
        return not self.is_terminal and self.deadline < timezone.now()

    def is_party(self, user):
        return user.pk in (self.client_id, self.assigned_worker_id)

    def update_dispute_status(self):
        """Recompute the orthogonal disputed flag from the job's disputes."""
        self.has_active_dispute = self.disputes.filter(status__in=ACTIVE_DISPUTE_STATUSES).exists()
        self.save(update_fields=['has_active_dispute', 'updated_at'])


class Application(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='applications')
    worker = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='applications')
    proposed_budget = models.DecimalField(max_digits=12, decimal_places=2)
    proposal = models.TextField(blank=True, default='')
    status = models.CharField(max_length=20, choices=ApplicationStatus.choices, default=ApplicationStatus.PENDING)
    submitted_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['submitted_at']
        indexes = [
            models.Index(fields=['job', 'status']),
            models.Index(fields=['worker', 'status']),
        ]

    def __str__(self):
        return f"{self.worker.username} applied to {self.job.title} ({self.status})"


class Revision(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='revisions')
    requested_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='requested_revisions')
    reason = models.TextField()
    requested_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['requested_at']

    def __str__(self):
        return f"Revision for {self.job.title}: {self.reason[:40]}"


class Review(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name='reviews')
    reviewer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reviews_given')
    reviewee = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reviews_received')
    direction = models.CharField(max_length=20, choices=ReviewDirection.choices)
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('job', 'reviewer')

    def __str__(self):
        return f"Review for {self.reviewee.username} on {self.job.title} ({self.rating}/5)"
