from rest_framework import serializers
from core.constants import ProofDecision
from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    job_title = serializers.ReadOnlyField(source='job.title')
    payer = serializers.ReadOnlyField(source='payer.username')
    payee = serializers.ReadOnlyField(source='payee.username')

    class Meta:
        model = Payment
        fields = [
            'id', 'job', 'job_title', 'payer', 'payee', 'amount', 'original_amount', 'currency',
            'status', 'method', 'is_held', 'proof_status', 'proof_note', 'proof_rejections',
            'gateway_reference', 'failure_reason', 'resolution_outcome',
            'created_at', 'updated_at', 'settled_at', 'refunded_at'
        ]
        read_only_fields = fields


class SettleSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)


class ProofUploadSerializer(serializers.Serializer):
    proof = serializers.FileField()
    note = serializers.CharField(allow_blank=True, required=False, default='')

    def validate_proof(self, value):
        if value.size > 5 * 1024 * 1024:
            raise serializers.ValidationError("Proof file must be 5MB or smaller.")
        return value


class ProofVerifySerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=ProofDecision.choices)
    note = serializers.CharField(allow_blank=True, required=False, default='')
