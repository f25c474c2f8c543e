from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from .models import User
from .serializers import UserSerializer, PublicUserSerializer


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="The authenticated user's account.",
        responses={200: UserSerializer, 401: 'Unauthorized'}
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)


class PublicProfileView(APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_description="Public profile of a client or worker, with rating statistics "
                              "from the reviews they received.",
        responses={200: PublicUserSerializer, 404: 'Not Found'}
    )
    def get(self, request, pk):
        try:
            user = User.objects.get(pk=pk, is_active=True)
        except User.DoesNotExist:
            return Response({"error": "User not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(PublicUserSerializer(user).data)
