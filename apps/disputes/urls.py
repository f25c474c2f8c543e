from django.urls import path
from .views import (
    DisputeListCreateView, DisputeDetailView, DisputeEvidenceView, DisputeEvidenceFileView,
    DisputeStatusView, DisputeResolveView,
)

urlpatterns = [
    path('', DisputeListCreateView.as_view(), name='dispute_list'),
    path('<int:pk>/', DisputeDetailView.as_view(), name='dispute_detail'),
    path('<int:pk>/evidence/', DisputeEvidenceView.as_view(), name='dispute_evidence'),
    path('<int:pk>/evidence/<int:evidence_id>/file/', DisputeEvidenceFileView.as_view(), name='dispute_evidence_file'),
    path('<int:pk>/status/', DisputeStatusView.as_view(), name='dispute_status'),
    path('<int:pk>/resolve/', DisputeResolveView.as_view(), name='dispute_resolve'),
]
