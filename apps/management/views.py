from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
from core.utils import IsPlatformAdmin
from .models import ManagementLog
from .serializers import ManagementLogSerializer


class ManagementLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Admin API for browsing the audit trail of admin actions.
    Filter with ``?action=<name>``.
    """
    queryset = ManagementLog.objects.select_related('admin')
    serializer_class = ManagementLogSerializer
    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    def get_queryset(self):
        queryset = super().get_queryset()
        action = self.request.query_params.get('action')
        if action:
            queryset = queryset.filter(action=action)
        return queryset
