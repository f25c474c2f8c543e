from django.urls import path
from .views import (
    JobCreateView, JobListView, OpenJobListView, JobDetailView, JobApplyView, JobWithdrawView,
    JobApplicationsListView, JobApplicationResponseView, JobStartView, JobSubmitView,
    JobRevisionView, JobResubmitView, JobCancelView, JobReviewsView,
)

urlpatterns = [
    path('create/', JobCreateView.as_view(), name='job_create'),
    path('', JobListView.as_view(), name='job_list'),
    path('open/', OpenJobListView.as_view(), name='open_jobs'),
    path('<int:pk>/', JobDetailView.as_view(), name='job_details'),
    path('<int:pk>/apply/', JobApplyView.as_view(), name='job_apply'),
    path('<int:pk>/withdraw/', JobWithdrawView.as_view(), name='job_withdraw'),
    path('<int:pk>/applications/', JobApplicationsListView.as_view(), name='job_applications'),
    path('<int:pk>/applications/<int:application_id>/respond/', JobApplicationResponseView.as_view(),
         name='job_application_response'),
    path('<int:pk>/start/', JobStartView.as_view(), name='job_start'),
    path('<int:pk>/submit/', JobSubmitView.as_view(), name='job_submit'),
    path('<int:pk>/revision/', JobRevisionView.as_view(), name='job_revision'),
    path('<int:pk>/resubmit/', JobResubmitView.as_view(), name='job_resubmit'),
    path('<int:pk>/cancel/', JobCancelView.as_view(), name='job_cancel'),
    path('<int:pk>/reviews/', JobReviewsView.as_view(), name='job_reviews'),
]
