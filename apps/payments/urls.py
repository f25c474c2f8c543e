from django.urls import path
from .views import (
    JobSettleView, PaymentListView, PaymentDetailView, PaymentAttemptView, PaymentProofView,
    PaymentVerifyView,
)

urlpatterns = [
    path('jobs/<int:pk>/settle/', JobSettleView.as_view(), name='job_settle'),
    path('', PaymentListView.as_view(), name='payment_list'),
    path('<int:pk>/', PaymentDetailView.as_view(), name='payment_detail'),
    path('<int:pk>/attempt/', PaymentAttemptView.as_view(), name='payment_attempt'),
    path('<int:pk>/proof/', PaymentProofView.as_view(), name='payment_proof'),
    path('<int:pk>/verify/', PaymentVerifyView.as_view(), name='payment_verify'),
]
