import mimetypes
from django.http import HttpResponse
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
from core.constants import DisputeStatus
from core.exceptions import LifecycleError, NotFound, Unauthorized
from core.utils import IsHRAdmin, error_response, get_or_not_found
from .models import Dispute, DisputeEvidence
from .serializers import (
    DisputeSerializer, DisputeCreateSerializer, DisputeUpdateSerializer, DisputeEvidenceSerializer,
    DisputeEvidenceCreateSerializer, DisputeStatusSerializer, DisputeResolveSerializer,
)
from .tracker import dispute_tracker


class DisputeListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Disputes on the user's jobs. HR admins see every dispute.",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING,
                              enum=DisputeStatus.values, description='Filter by dispute status'),
        ],
        responses={200: DisputeSerializer(many=True), 401: 'Unauthorized'}
    )
    def get(self, request):
        dispute_status = request.query_params.get('status')
        if request.user.is_hr_admin:
            disputes = dispute_tracker.all_disputes(dispute_status)
        else:
            disputes = dispute_tracker.disputes_for(request.user)
            if dispute_status:
                disputes = disputes.filter(status=dispute_status)
        return Response(DisputeSerializer(disputes, many=True).data)

    @swagger_auto_schema(
        operation_description="Open a dispute on a job. The job's in-flight payment is held "
                              "until the dispute is resolved or closed.",
        request_body=DisputeCreateSerializer,
        responses={
            201: DisputeSerializer,
            400: 'Bad Request',
            403: 'Forbidden',
            404: 'Job not found',
            409: 'Job not disputable or already disputed'
        }
    )
    def post(self, request):
        serializer = DisputeCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            dispute = dispute_tracker.open(
                data['job_id'], request.user, data['description'], data['dispute_type'],
                title=data['title'], priority=data['priority'],
            )
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


class DisputeDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Retrieve a dispute (job parties or HR admins).",
        responses={200: DisputeSerializer, 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            dispute = get_or_not_found(Dispute.objects.select_related('job'), 'Dispute', pk=pk)
            if not dispute.job.is_party(request.user) and not request.user.is_hr_admin:
                raise Unauthorized("Not authorized to view this dispute")
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)

    @swagger_auto_schema(
        operation_description="Restate the description of an open or investigating dispute.",
        request_body=DisputeUpdateSerializer,
        responses={200: DisputeSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Dispute resolved or closed'}
    )
    def patch(self, request, pk):
        serializer = DisputeUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            dispute = dispute_tracker.update_description(pk, request.user, serializer.validated_data['description'])
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)


class DisputeEvidenceView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @swagger_auto_schema(
        operation_description="Evidence attached to a dispute.",
        responses={200: DisputeEvidenceSerializer(many=True), 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            dispute = get_or_not_found(Dispute.objects.select_related('job'), 'Dispute', pk=pk)
            if not dispute.job.is_party(request.user) and not request.user.is_hr_admin:
                raise Unauthorized("Not authorized to view this dispute")
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeEvidenceSerializer(dispute.evidence.all(), many=True).data)

    @swagger_auto_schema(
        operation_description="Add evidence to an open or investigating dispute. Images and documents "
                              "are uploaded as a file, messages are sent as a description.",
        manual_parameters=[
            openapi.Parameter('kind', openapi.IN_FORM, type=openapi.TYPE_STRING, required=True,
                              enum=['image', 'document', 'message']),
            openapi.Parameter('file', openapi.IN_FORM, type=openapi.TYPE_FILE),
            openapi.Parameter('description', openapi.IN_FORM, type=openapi.TYPE_STRING),
        ],
        consumes=['multipart/form-data'],
        responses={201: DisputeEvidenceSerializer, 400: 'Bad Request', 403: 'Forbidden',
                   409: 'Dispute resolved or closed'}
    )
    def post(self, request, pk):
        serializer = DisputeEvidenceCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        blob_ref = ''
        try:
            if data.get('file') is not None:
                blob_ref = dispute_tracker.store_evidence(data['file'].read(), data['file'].name)
            try:
                evidence = dispute_tracker.add_evidence(
                    pk, request.user, data['kind'], blob_ref, data['description']
                )
            except LifecycleError:
                if blob_ref:
                    dispute_tracker.blob_store.delete(blob_ref)
                raise
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeEvidenceSerializer(evidence).data, status=status.HTTP_201_CREATED)


class DisputeEvidenceFileView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Download an evidence file (job parties or HR admins).",
        responses={200: 'Evidence file', 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk, evidence_id):
        try:
            evidence = get_or_not_found(
                DisputeEvidence.objects.select_related('dispute__job'), 'Evidence', pk=evidence_id, dispute_id=pk
            )
            if not evidence.dispute.job.is_party(request.user) and not request.user.is_hr_admin:
                raise Unauthorized("Not authorized to view this evidence")
            if not evidence.blob_ref or not dispute_tracker.blob_store.exists(evidence.blob_ref):
                raise NotFound("This evidence has no file")
            data = dispute_tracker.blob_store.retrieve(evidence.blob_ref)
        except LifecycleError as e:
            return error_response(e)
        content_type = mimetypes.guess_type(evidence.blob_ref)[0] or 'application/octet-stream'
        return HttpResponse(data, content_type=content_type)


class DisputeStatusView(APIView):
    permission_classes = [IsAuthenticated, IsHRAdmin]

    @swagger_auto_schema(
        operation_description="Move a dispute to investigating or close it. Closing an unresolved "
                              "dispute releases the payment hold without a ruling.",
        request_body=DisputeStatusSerializer,
        responses={200: DisputeSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        serializer = DisputeStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            dispute = dispute_tracker.set_status(
                pk, serializer.validated_data['status'], request.user, serializer.validated_data.get('hr_notes')
            )
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)


class DisputeResolveView(APIView):
    permission_classes = [IsAuthenticated, IsHRAdmin]

    @swagger_auto_schema(
        operation_description="Resolve a dispute: refund, release or partially pay the job's payment.",
        request_body=DisputeResolveSerializer,
        responses={200: DisputeSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        serializer = DisputeResolveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        try:
            dispute = dispute_tracker.resolve(
                pk, data['outcome'], data['resolution_note'], request.user, data.get('amount')
            )
        except LifecycleError as e:
            return error_response(e)
        return Response(DisputeSerializer(dispute).data)
