from django.contrib import admin
from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'job', 'payer', 'payee', 'amount', 'currency', 'status', 'method', 'is_held', 'proof_status')
    list_filter = ('status', 'method', 'is_held', 'proof_status')
    search_fields = ('job__title', 'payer__username', 'payee__username', 'gateway_reference')
    # Status changes go through the settlement tracker.
    readonly_fields = ('status', 'is_held', 'proof_status', 'settled_at', 'refunded_at')
