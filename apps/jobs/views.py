import logging
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
from core.constants import JobStatus
from core.exceptions import LifecycleError, Unauthorized
from core.utils import IsClient, IsWorker, error_response, get_or_not_found
from .ledger import ledger
from .models import Job
from .serializers import (
    JobSerializer, OpenJobSerializer, JobCreateSerializer, ApplicationSerializer,
    ApplicationCreateSerializer, ApplicationResponseSerializer, RevisionRequestSerializer,
    CancelSerializer, ReviewSerializer, ReviewCreateSerializer,
)
from .state_machine import job_machine

logger = logging.getLogger(__name__)


def visible_job(pk, user):
    """A job the user takes part in (or any job for platform admins)."""
    job = get_or_not_found(Job.objects.select_related('client', 'assigned_worker'), 'Job', pk=pk)
    if not job.is_party(user) and not user.is_platform_admin:
        raise Unauthorized("Not authorized to view this job")
    return job


class JobCreateView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Post a new job open for applications.",
        request_body=JobCreateSerializer,
        responses={201: JobSerializer, 400: 'Bad Request', 401: 'Unauthorized', 403: 'Forbidden'}
    )
    def post(self, request):
        serializer = JobCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            job = job_machine.post(request.user, **serializer.validated_data)
        except LifecycleError as e:
            return error_response(e)
        return Response(JobSerializer(job).data, status=status.HTTP_201_CREATED)


class JobListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Jobs posted by the client, or assigned to the worker.",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING,
                              enum=JobStatus.values, description='Filter by job status'),
        ],
        responses={200: JobSerializer(many=True), 401: 'Unauthorized'}
    )
    def get(self, request):
        if request.user.is_worker:
            jobs = Job.objects.filter(assigned_worker=request.user)
        else:
            jobs = Job.objects.filter(client=request.user)
        job_status = request.query_params.get('status')
        if job_status:
            jobs = jobs.filter(status=job_status)
        serializer = JobSerializer(jobs.select_related('client', 'assigned_worker'), many=True)
        return Response(serializer.data)


class OpenJobListView(APIView):
    permission_classes = [IsAuthenticated, IsWorker]

    @swagger_auto_schema(
        operation_description="Jobs currently accepting applications.",
        responses={200: OpenJobSerializer(many=True), 401: 'Unauthorized', 403: 'Forbidden'}
    )
    def get(self, request):
        jobs = Job.objects.filter(status=JobStatus.POSTED).select_related('client')
        return Response(OpenJobSerializer(jobs, many=True).data)


class JobDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Retrieve a job (client, assigned worker or admin).",
        responses={200: JobSerializer, 401: 'Unauthorized', 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            job = visible_job(pk, request.user)
        except LifecycleError as e:
            return error_response(e)
        return Response(JobSerializer(job).data)


class JobApplyView(APIView):
    permission_classes = [IsAuthenticated, IsWorker]

    @swagger_auto_schema(
        operation_description="Apply to a posted job with a proposed budget.",
        request_body=ApplicationCreateSerializer,
        responses={
            201: ApplicationSerializer,
            400: 'Bad Request',
            404: 'Not Found',
            409: 'Job not accepting applications or duplicate application'
        }
    )
    def post(self, request, pk):
        serializer = ApplicationCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            application = ledger.submit(pk, request.user, **serializer.validated_data)
        except LifecycleError as e:
            return error_response(e)
        return Response(ApplicationSerializer(application).data, status=status.HTTP_201_CREATED)


class JobWithdrawView(APIView):
    permission_classes = [IsAuthenticated, IsWorker]

    @swagger_auto_schema(
        operation_description="Withdraw the worker's pending application.",
        responses={200: ApplicationSerializer, 404: 'No pending application'}
    )
    def post(self, request, pk):
        try:
            application = ledger.withdraw(pk, request.user)
        except LifecycleError as e:
            return error_response(e)
        return Response(ApplicationSerializer(application).data)


class JobApplicationsListView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="List applications for a job the client owns.",
        responses={200: ApplicationSerializer(many=True), 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            job = get_or_not_found(Job.objects.all(), 'Job', pk=pk)
            if job.client_id != request.user.pk:
                raise Unauthorized("Only the job owner can view its applications")
        except LifecycleError as e:
            return error_response(e)
        return Response(ApplicationSerializer(ledger.applications_for(job), many=True).data)


class JobApplicationResponseView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Accept or reject an application. Accepting assigns the worker "
                              "and rejects every other application.",
        request_body=ApplicationResponseSerializer,
        responses={
            200: ApplicationSerializer,
            400: 'Bad Request',
            403: 'Forbidden',
            404: 'Not Found',
            409: 'Job already assigned or application not pending'
        }
    )
    def post(self, request, pk, application_id):
        serializer = ApplicationResponseSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            if serializer.validated_data['action'] == 'accept':
                job, application = ledger.accept(pk, application_id, request.user)
            else:
                application = ledger.reject(pk, application_id, request.user)
        except LifecycleError as e:
            return error_response(e)
        return Response(ApplicationSerializer(application).data)


class JobTransitionView(APIView):
    """Base for the single-action lifecycle endpoints."""
    permission_classes = [IsAuthenticated]
    input_serializer = None

    def perform(self, request, pk, **data):
        raise NotImplementedError

    def post(self, request, pk):
        data = {}
        if self.input_serializer is not None:
            serializer = self.input_serializer(data=request.data)
            if not serializer.is_valid():
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            data = serializer.validated_data
        try:
            job = self.perform(request, pk, **data)
        except LifecycleError as e:
            return error_response(e)
        return Response(JobSerializer(job).data)


class JobStartView(JobTransitionView):

    @swagger_auto_schema(
        operation_description="Assigned worker starts work (assigned -> in_progress).",
        responses={200: JobSerializer, 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, pk):
        return job_machine.start_work(pk, request.user)


class JobSubmitView(JobTransitionView):

    @swagger_auto_schema(
        operation_description="Assigned worker submits the work for the client's review.",
        responses={200: JobSerializer, 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, pk):
        return job_machine.submit_for_review(pk, request.user)


class JobRevisionView(JobTransitionView):
    input_serializer = RevisionRequestSerializer

    @swagger_auto_schema(
        operation_description="Client requests a revision of submitted work.",
        request_body=RevisionRequestSerializer,
        responses={200: JobSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, pk, reason):
        return job_machine.request_revision(pk, request.user, reason)


class JobResubmitView(JobTransitionView):

    @swagger_auto_schema(
        operation_description="Worker resumes work on a requested revision.",
        responses={200: JobSerializer, 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, pk):
        return job_machine.resubmit(pk, request.user)


class JobCancelView(JobTransitionView):
    input_serializer = CancelSerializer

    @swagger_auto_schema(
        operation_description="Cancel a job (owner or admin). Refused while a payment is in flight.",
        request_body=CancelSerializer,
        responses={200: JobSerializer, 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        return super().post(request, pk)

    def perform(self, request, pk, reason=''):
        return job_machine.cancel(pk, request.user, reason)


class JobReviewsView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="List the reviews left on a job.",
        responses={200: ReviewSerializer(many=True), 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            job = visible_job(pk, request.user)
        except LifecycleError as e:
            return error_response(e)
        return Response(ReviewSerializer(job.reviews.select_related('reviewer', 'reviewee'), many=True).data)

    @swagger_auto_schema(
        operation_description="Review the other party of a completed job.",
        request_body=ReviewCreateSerializer,
        responses={201: ReviewSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Already reviewed'}
    )
    def post(self, request, pk):
        serializer = ReviewCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            review = job_machine.rate(pk, request.user, **serializer.validated_data)
        except LifecycleError as e:
            return error_response(e)
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)
