from django.contrib import admin
from .models import Dispute, DisputeEvidence


class DisputeEvidenceInline(admin.TabularInline):
    model = DisputeEvidence
    extra = 0
    readonly_fields = ('kind', 'blob_ref', 'description', 'uploaded_by', 'uploaded_at')


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'job', 'initiator_role', 'dispute_type', 'priority', 'status', 'outcome', 'created_at')
    list_filter = ('status', 'dispute_type', 'priority', 'outcome')
    search_fields = ('title', 'job__title', 'description')
    readonly_fields = ('status', 'outcome', 'partial_amount', 'resolved_by', 'resolved_at', 'closed_at')
    inlines = [DisputeEvidenceInline]
