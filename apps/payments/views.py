import logging
import mimetypes
from django.db.models import Q
from django.http import HttpResponse
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.parsers import MultiPartParser, FormParser
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi
from core.constants import PaymentStatus
from core.exceptions import LifecycleError, NotFound, Unauthorized
from core.utils import IsClient, IsFinanceAdmin, error_response, get_or_not_found
from .models import Payment
from .serializers import PaymentSerializer, SettleSerializer, ProofUploadSerializer, ProofVerifySerializer
from .tracker import payment_tracker

logger = logging.getLogger(__name__)


def visible_payment(pk, user):
    payment = get_or_not_found(Payment.objects.select_related('job', 'payer', 'payee'), 'Payment', pk=pk)
    if user.pk not in (payment.payer_id, payment.payee_id) and not user.is_platform_admin:
        raise Unauthorized("Not authorized to view this payment")
    return payment


class JobSettleView(APIView):
    permission_classes = [IsAuthenticated, IsClient]

    @swagger_auto_schema(
        operation_description="Start payment for a job awaiting completion and try the gateway. "
                              "When the gateway fails the payment moves to manual review and "
                              "the client is asked to upload a proof of payment.",
        request_body=SettleSerializer,
        responses={
            200: PaymentSerializer,
            202: 'Payment created but held by an open dispute',
            403: 'Forbidden',
            409: 'Duplicate payment or illegal transition'
        }
    )
    def post(self, request, pk):
        serializer = SettleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            payment = payment_tracker.initiate(pk, request.user, serializer.validated_data.get('amount'))
            if payment.is_held:
                return Response(PaymentSerializer(payment).data, status=status.HTTP_202_ACCEPTED)
            payment = payment_tracker.attempt_gateway_settlement(payment.pk)
        except LifecycleError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data)


class PaymentListView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Payments the user made or received. Finance admins see every payment.",
        manual_parameters=[
            openapi.Parameter('status', openapi.IN_QUERY, type=openapi.TYPE_STRING,
                              enum=PaymentStatus.values, description='Filter by payment status'),
        ],
        responses={200: PaymentSerializer(many=True), 401: 'Unauthorized'}
    )
    def get(self, request):
        payments = Payment.objects.select_related('job', 'payer', 'payee')
        if not request.user.is_finance_admin:
            payments = payments.filter(Q(payer=request.user) | Q(payee=request.user))
        payment_status = request.query_params.get('status')
        if payment_status:
            payments = payments.filter(status=payment_status)
        return Response(PaymentSerializer(payments, many=True).data)


class PaymentDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Retrieve a payment (payer, payee or admin).",
        responses={200: PaymentSerializer, 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            payment = visible_payment(pk, request.user)
        except LifecycleError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data)


class PaymentAttemptView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Retry gateway settlement of a pending payment. "
                              "Settling an already settled payment changes nothing.",
        responses={200: PaymentSerializer, 403: 'Forbidden', 404: 'Not Found', 409: 'Payment held or not pending'}
    )
    def post(self, request, pk):
        try:
            payment = visible_payment(pk, request.user)
            if request.user.pk != payment.payer_id and not request.user.is_finance_admin:
                raise Unauthorized("Only the payer or a finance admin can settle this payment")
            payment = payment_tracker.attempt_gateway_settlement(pk)
        except LifecycleError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data)


class PaymentProofView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    @swagger_auto_schema(
        operation_description="Upload a proof of payment for a payment in manual review.",
        manual_parameters=[
            openapi.Parameter('proof', openapi.IN_FORM, type=openapi.TYPE_FILE, required=True,
                              description='Receipt or screenshot'),
            openapi.Parameter('note', openapi.IN_FORM, type=openapi.TYPE_STRING),
        ],
        consumes=['multipart/form-data'],
        responses={200: PaymentSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        serializer = ProofUploadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        proof = serializer.validated_data['proof']
        try:
            payment = visible_payment(pk, request.user)
            if request.user.pk != payment.payer_id:
                raise Unauthorized("Only the payer can upload proof for this payment")
            blob_ref = payment_tracker.store_proof(proof.read(), proof.name)
            try:
                payment = payment_tracker.submit_proof(pk, request.user, blob_ref, serializer.validated_data['note'])
            except LifecycleError:
                payment_tracker.blob_store.delete(blob_ref)
                raise
        except LifecycleError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data)

    @swagger_auto_schema(
        operation_description="Download the submitted proof of payment (payer or finance admin).",
        responses={200: 'Proof file', 403: 'Forbidden', 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            payment = visible_payment(pk, request.user)
            if request.user.pk != payment.payer_id and not request.user.is_finance_admin:
                raise Unauthorized("Not authorized to view this proof")
            if not payment.proof_ref or not payment_tracker.blob_store.exists(payment.proof_ref):
                raise NotFound("No proof has been uploaded for this payment")
            data = payment_tracker.blob_store.retrieve(payment.proof_ref)
        except LifecycleError as e:
            return error_response(e)
        content_type = mimetypes.guess_type(payment.proof_ref)[0] or 'application/octet-stream'
        return HttpResponse(data, content_type=content_type)


class PaymentVerifyView(APIView):
    permission_classes = [IsAuthenticated, IsFinanceAdmin]

    @swagger_auto_schema(
        operation_description="Accept or reject a submitted proof of payment. Accepting settles the "
                              "payment and completes the job.",
        request_body=ProofVerifySerializer,
        responses={200: PaymentSerializer, 400: 'Bad Request', 403: 'Forbidden', 409: 'Illegal transition'}
    )
    def post(self, request, pk):
        serializer = ProofVerifySerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            payment = payment_tracker.verify_proof(
                pk, request.user, serializer.validated_data['decision'], serializer.validated_data['note']
            )
        except LifecycleError as e:
            return error_response(e)
        return Response(PaymentSerializer(payment).data)
