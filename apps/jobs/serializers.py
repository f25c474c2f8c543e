from rest_framework import serializers
from apps.users.serializers import UserSerializer, PublicUserSerializer
from .models import Job, Application, Revision, Review


class ApplicationSerializer(serializers.ModelSerializer):
    worker = PublicUserSerializer(read_only=True)

    class Meta:
        model = Application
        fields = ['id', 'job', 'worker', 'proposed_budget', 'proposal', 'status', 'submitted_at', 'responded_at']
        read_only_fields = fields


class RevisionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Revision
        fields = ['id', 'reason', 'requested_at', 'resolved_at']
        read_only_fields = fields


class JobSerializer(serializers.ModelSerializer):
    client = UserSerializer(read_only=True)
    assigned_worker = PublicUserSerializer(read_only=True)
    is_overdue = serializers.BooleanField(read_only=True)
    revisions = RevisionSerializer(many=True, read_only=True)

    class Meta:
        model = Job
        fields = [
            'id', 'client', 'title', 'description', 'budget', 'currency', 'deadline', 'status',
            'assigned_worker', 'accepted_application', 'revision_count', 'revisions', 'has_active_dispute',
            'is_overdue', 'cancellation_reason', 'created_at', 'updated_at', 'completed_at', 'cancelled_at'
        ]
        read_only_fields = fields


class OpenJobSerializer(serializers.ModelSerializer):
    client = PublicUserSerializer(read_only=True)
    applications_count = serializers.SerializerMethodField()

    class Meta:
        model = Job
        fields = ['id', 'client', 'title', 'description', 'budget', 'currency', 'deadline', 'applications_count', 'created_at']
        read_only_fields = fields

    def get_applications_count(self, obj):
        return obj.applications.count()


class JobCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(allow_blank=True, required=False, default='')
    budget = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(max_length=3, required=False)
    deadline = serializers.DateTimeField()


class ApplicationCreateSerializer(serializers.Serializer):
    proposed_budget = serializers.DecimalField(max_digits=12, decimal_places=2)
    proposal = serializers.CharField(allow_blank=True, required=False, default='')


class ApplicationResponseSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['accept', 'reject'])


class RevisionRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, required=False, default='')


class ReviewSerializer(serializers.ModelSerializer):
    reviewer = serializers.ReadOnlyField(source='reviewer.username')
    reviewee = serializers.ReadOnlyField(source='reviewee.username')

    class Meta:
        model = Review
        fields = ['id', 'job', 'reviewer', 'reviewee', 'direction', 'rating', 'comment', 'created_at']
        read_only_fields = fields


class ReviewCreateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(allow_blank=True, required=False, default='')
