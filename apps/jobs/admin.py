from django.contrib import admin
from .models import Job, Application, Revision, Review


class ApplicationInline(admin.TabularInline):
    model = Application
    extra = 0
    readonly_fields = ('worker', 'proposed_budget', 'status', 'submitted_at', 'responded_at')


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ('title', 'client', 'assigned_worker', 'budget', 'currency', 'status', 'has_active_dispute', 'deadline')
    list_filter = ('status', 'has_active_dispute')
    search_fields = ('title', 'client__username')
    readonly_fields = ('status', 'assigned_worker', 'accepted_application', 'revision_count', 'has_active_dispute')
    inlines = [ApplicationInline]


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('job', 'reviewer', 'reviewee', 'direction', 'rating', 'created_at')
    list_filter = ('direction', 'rating')


admin.site.register(Revision)
