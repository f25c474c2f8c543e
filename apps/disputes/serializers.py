from rest_framework import serializers
from core.constants import DisputeType, DisputeStatus, DisputeOutcome, DisputePriority, EvidenceKind
from .models import Dispute, DisputeEvidence


class DisputeEvidenceSerializer(serializers.ModelSerializer):
    uploaded_by = serializers.ReadOnlyField(source='uploaded_by.username', default=None)

    class Meta:
        model = DisputeEvidence
        fields = ['id', 'kind', 'blob_ref', 'description', 'uploaded_by', 'uploaded_at']
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    job_title = serializers.ReadOnlyField(source='job.title')
    initiator = serializers.ReadOnlyField(source='initiator.username', default=None)
    resolved_by = serializers.ReadOnlyField(source='resolved_by.username', default=None)
    evidence = DisputeEvidenceSerializer(many=True, read_only=True)

    class Meta:
        model = Dispute
        fields = [
            'id', 'job', 'job_title', 'payment', 'initiator', 'initiator_role', 'title', 'dispute_type',
            'priority', 'description', 'evidence', 'status', 'outcome', 'partial_amount', 'resolution_note',
            'hr_notes', 'resolved_by', 'created_at', 'updated_at', 'resolved_at', 'closed_at'
        ]
        read_only_fields = fields


class DisputeCreateSerializer(serializers.Serializer):
    job_id = serializers.IntegerField()
    title = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    description = serializers.CharField()
    dispute_type = serializers.ChoiceField(choices=DisputeType.choices, default=DisputeType.OTHER)
    priority = serializers.ChoiceField(choices=DisputePriority.choices, default=DisputePriority.MEDIUM)


class DisputeUpdateSerializer(serializers.Serializer):
    description = serializers.CharField()


class DisputeEvidenceCreateSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=EvidenceKind.choices)
    file = serializers.FileField(required=False)
    description = serializers.CharField(allow_blank=True, required=False, default='')

    def validate_file(self, value):
        if value.size > 5 * 1024 * 1024:
            raise serializers.ValidationError("Evidence files must be 5MB or smaller.")
        return value


class DisputeStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[DisputeStatus.INVESTIGATING, DisputeStatus.CLOSED])
    hr_notes = serializers.CharField(allow_blank=True, required=False)


class DisputeResolveSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(
        choices=[DisputeOutcome.REFUND, DisputeOutcome.RELEASE, DisputeOutcome.PARTIAL]
    )
    resolution_note = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)

    def validate(self, data):
        if data['outcome'] == DisputeOutcome.PARTIAL and data.get('amount') is None:
            raise serializers.ValidationError({'amount': "A partial resolution needs an amount."})
        return data
