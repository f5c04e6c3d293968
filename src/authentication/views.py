"""Authentication endpoints (login, refresh, logout, profile, landing) and user administration."""

from collections.abc import Mapping
from typing import Any, cast

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import JsonResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.response import Response
from rest_framework.views import APIView

from access_control.errors import ConstraintError, NotFoundError, ValidationError
from access_control.permissions import AccessControlMixin, AclPermission
from access_control.presenters import user_row
from access_control.serializers import LandingSerializer
from core.response import BaseAPIView, BaseViewSet, api_response
from .managers import UserManager
from .models import Language
from .serializers import (
    LoginSerializer,
    ProfileUpdateSerializer,
    UserCreateSerializer,
    UserDetailSerializer,
    UserRowSerializer,
    UserUpdateSerializer,
)
from .services import LoginService, TokenService

User = get_user_model()


class LoginView(AccessControlMixin, BaseAPIView):
    permission_classes: list[Any] = []

    def post(self, request):
        """Authenticate, issue access + refresh tokens and tell where to land."""
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = LoginService().login(**serializer.validated_data)
        access, refresh = TokenService.generate_tokens(user)
        landing = self.services.engine.landing(user)
        return api_response(
            {
                "access": access,
                "refresh": refresh,
                "landing": LandingSerializer(landing).data if landing else None,
            }
        )


class RefreshView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Exchange a valid refresh token for new access/refresh tokens."""
        if not isinstance(request.data, Mapping):
            raise ValidationError("The request body must be a JSON object.")
        refresh_token = request.data.get("refresh")
        if not refresh_token:
            raise AuthenticationFailed("Refresh token required")

        payload = TokenService.decode_token(refresh_token, expected_type="refresh")
        user = _get_enabled_user(payload.get("sub"))
        if not user:
            raise AuthenticationFailed("User not found or disabled")

        # Tokens minted before the last logout-all carry an older version.
        token_ver = payload.get("ver")
        if token_ver is None or token_ver != user.token_version:
            raise AuthenticationFailed("Invalid or revoked refresh token")

        access, new_refresh = TokenService.generate_tokens(user)
        return api_response({"access": access, "refresh": new_refresh})


class LogoutView(APIView):
    """Invalidate the current access token by blocklisting its jti."""

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Blocklist the bearer access token and return 204 No Content."""
        token = _get_bearer_token(request)
        if not token:
            return JsonResponse({"data": None, "errors": ["Missing token."]}, status=401)

        payload = TokenService.decode_token(token, expected_type="access")
        TokenService.block_token(payload["jti"], payload["exp"])
        # 204 responses must not include a body.
        return Response(status=status.HTTP_204_NO_CONTENT)


class LogoutAllView(APIView):
    """Invalidate all existing tokens for the current user across devices."""

    # noinspection PyMethodMayBeStatic
    def post(self, request):
        """Increment token_version and blocklist the current access token."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")

        user = request.user
        user.token_version = (user.token_version or 1) + 1
        user.save(update_fields=["token_version"])

        token = _get_bearer_token(request)
        if token:
            payload = TokenService.decode_token(token, expected_type="access")
            TokenService.block_token(payload["jti"], payload["exp"])

        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(BaseAPIView):
    permission_classes: list[Any] = []

    # noinspection PyMethodMayBeStatic
    def get(self, request):
        """Return the current user's profile."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")
        return api_response(UserDetailSerializer(request.user).data)

    # noinspection PyMethodMayBeStatic
    def patch(self, request):
        """Update profile fields for the current user."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return api_response(UserDetailSerializer(request.user).data)

    # noinspection PyMethodMayBeStatic
    def delete(self, request):
        """Disable the current user and blocklist the presented token."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")

        user = request.user
        if user.enabled:
            user.enabled = False
            user.save(update_fields=["enabled"])

        token = _get_bearer_token(request)
        if token:
            payload = TokenService.decode_token(token, expected_type="access")
            TokenService.block_token(payload["jti"], payload["exp"])

        return Response(status=status.HTTP_204_NO_CONTENT)


class LandingView(AccessControlMixin, BaseAPIView):
    """Where the current user lands after login: the group's default grant."""

    permission_classes: list[Any] = []

    def get(self, request):
        """Return ``{module, action}`` or null when the group has no landing grant."""
        if not request.user.is_authenticated:
            raise AuthenticationFailed("Authentication required")
        landing = self.services.engine.landing(request.user)
        return api_response(LandingSerializer(landing).data if landing else None)


@extend_schema_view(
    list=extend_schema(
        parameters=[OpenApiParameter("group", OpenApiTypes.INT)],
        responses=UserRowSerializer(many=True),
    ),
    retrieve=extend_schema(responses=UserRowSerializer),
    create=extend_schema(request=UserCreateSerializer, responses={201: UserRowSerializer}),
    partial_update=extend_schema(request=UserUpdateSerializer, responses=UserRowSerializer),
    destroy=extend_schema(responses={204: None}),
)
class UserViewSet(AccessControlMixin, BaseViewSet):
    """User administration; every user belongs to exactly one group."""

    permission_classes = [AclPermission]
    acl_module = "users"
    lookup_value_regex = r"[0-9a-fA-F-]+"

    def list(self, request):
        """List users with their group name; ``?group=`` filters by group."""
        group_id = request.query_params.get("group")
        if group_id is not None and not group_id.isdigit():
            raise ValidationError("The 'group' query parameter must be a group id.")
        rows = self.services.memberships.list_users(int(group_id) if group_id else None)
        return api_response(UserRowSerializer(rows, many=True).data)

    def retrieve(self, request, pk=None):
        return api_response(UserRowSerializer(user_row(_get_user(pk))).data)

    def create(self, request):
        """Create a user in the requested group, or in the default group."""
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        group = self.services.memberships.group_for_new_user(data.pop("group"))
        language = data.pop("language") or _default_language()
        manager = cast(UserManager, User.objects)
        user = manager.create_user(
            data.pop("username"), data.pop("password"), group=group, language=language, **data
        )
        return api_response(UserRowSerializer(user_row(user)).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        """Change group, enabled flag or password; optionally reset the fault counter."""
        user = _get_user(pk)
        serializer = UserUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if "group" in data:
            self.services.memberships.assign(user, data["group"])
        if "enabled" in data:
            user.enabled = data["enabled"]
        if "password" in data:
            user.set_password(data["password"])
        if data.get("reset_faults"):
            user.faults = 0
        user.save()
        return api_response(UserRowSerializer(user_row(user)).data)

    def destroy(self, request, pk=None):
        user = _get_user(pk)
        if user.pk == request.user.pk:
            raise ConstraintError("You cannot delete your own user.")
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


def _get_user(user_id):
    """Load a user with its group and language, or raise NotFoundError."""
    try:
        return User.objects.select_related("group", "language").get(pk=user_id)
    except (User.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError(f"User {user_id} does not exist.") from None


def _default_language() -> Language:
    language = Language.objects.filter(is_default=True).first() or Language.objects.first()
    if language is None:
        raise ValidationError("No language is configured.")
    return language


def _get_enabled_user(user_id) -> User | None:
    """Retrieve an enabled user by id, or None if missing/disabled."""
    if not user_id:
        return None
    try:
        user = User.objects.select_related("group").get(id=user_id)
    except User.DoesNotExist:
        return None
    if not user.enabled:
        return None
    return user


def _get_bearer_token(request) -> str | None:
    """Extract the Bearer token from Authorization header if present."""
    auth_header = request.META.get("HTTP_AUTHORIZATION", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return None
