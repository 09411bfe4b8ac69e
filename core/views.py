import logging

from django.db import connections
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from common.permissions import IsPlatformAdmin
from core import auth
from core.models import Admin
from core.serializers import (
    AdminCreateSerializer,
    LoginSerializer,
    RefreshTokenSerializer,
    StudioRegistrationSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


class UserLoginView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = auth.user_login(**serializer.validated_data)
        return Response(payload, status=status.HTTP_200_OK)


class AdminLoginView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = auth.admin_login(**serializer.validated_data)
        return Response(payload, status=status.HTTP_200_OK)


class RegisterView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "register"

    def post(self, request):
        serializer = StudioRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = auth.register_studio_owner(**serializer.validated_data)
        return Response(payload, status=status.HTTP_201_CREATED)


class AdminRegisterView(APIView):
    permission_classes = [IsAuthenticated, IsPlatformAdmin]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "register"

    def post(self, request):
        serializer = AdminCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = auth.create_admin(**serializer.validated_data)
        return Response(payload, status=status.HTTP_201_CREATED)


class TokenRefreshView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "refresh"

    def post(self, request):
        serializer = RefreshTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = auth.refresh_tokens(serializer.validated_data["refreshToken"])
        return Response(payload, status=status.HTTP_200_OK)


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        auth.logout(request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        principal = request.user
        if isinstance(principal, Admin):
            return Response({"admin": auth.admin_payload(principal), "type": principal.principal_type})
        return Response({"user": UserSerializer(principal).data, "type": principal.principal_type})


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None), "detail": str(exc)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
