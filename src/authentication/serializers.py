"""Serializers for login, profile, and user administration."""

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Language

User = get_user_model()


class LoginSerializer(serializers.Serializer):
    """Credentials payload; verification happens in LoginService."""

    username = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class UserDetailSerializer(serializers.ModelSerializer):
    """Read-only profile payload for the current user."""

    group = serializers.CharField(source="group.name")
    language = serializers.CharField(source="language.code")

    class Meta:
        """Expose identity fields with group name and language code."""
        model = User
        fields = [
            "id",
            "username",
            "name",
            "surname",
            "email",
            "group",
            "language",
            "admin",
            "last_login",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Patchable fields for /auth/me updates."""

    language = serializers.SlugRelatedField(
        slug_field="code", queryset=Language.objects.all(), required=False
    )

    class Meta:
        """Allow partial updates of name fields, email and language."""
        model = User
        fields = ["name", "surname", "email", "language"]
        extra_kwargs = {
            "name": {"required": False, "allow_blank": True},
            "surname": {"required": False, "allow_blank": True},
            "email": {"required": False, "allow_null": True},
        }

    def validate(self, attrs):
        """Reject attempts to change group or admin flag from the profile.

        Group membership is an administrator decision and goes through the
        users endpoint.
        """
        forbidden = {"group", "admin", "username"} & set(getattr(self, "initial_data", {}))
        if forbidden:
            raise serializers.ValidationError(
                f"Fields cannot be updated via this endpoint: {', '.join(sorted(forbidden))}"
            )
        return super().validate(attrs)


class UserCreateSerializer(serializers.Serializer):
    """Administrator-created user; the default group applies when none is given."""

    username = serializers.CharField(min_length=3, max_length=150)
    password = serializers.CharField(write_only=True, min_length=5, trim_whitespace=False)
    name = serializers.CharField(min_length=2, max_length=150)
    surname = serializers.CharField(min_length=2, max_length=150)
    email = serializers.EmailField(required=False, allow_null=True, default=None)
    group = serializers.IntegerField(required=False, allow_null=True, default=None)
    language = serializers.SlugRelatedField(
        slug_field="code", queryset=Language.objects.all(), required=False, allow_null=True, default=None
    )
    enabled = serializers.BooleanField(required=False, default=True)

    @staticmethod
    def validate_username(value):
        """Ensure username is unique before creation."""
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError(f"Username '{value}' is already in use")
        return value


class UserUpdateSerializer(serializers.Serializer):
    """Administrator change of an existing user."""

    group = serializers.IntegerField(required=False)
    enabled = serializers.BooleanField(required=False)
    password = serializers.CharField(write_only=True, required=False, min_length=5, trim_whitespace=False)
    reset_faults = serializers.BooleanField(required=False, default=False)


class UserRowSerializer(serializers.Serializer):
    id = serializers.CharField()
    username = serializers.CharField()
    full_name = serializers.CharField()
    email = serializers.EmailField(allow_null=True)
    group = serializers.IntegerField(source="group_id")
    group_name = serializers.CharField()
    language = serializers.CharField()
    admin = serializers.BooleanField()
    enabled = serializers.BooleanField()
    faults = serializers.IntegerField()
    last_login = serializers.DateTimeField(allow_null=True)


__all__ = [
    "LoginSerializer",
    "ProfileUpdateSerializer",
    "UserCreateSerializer",
    "UserDetailSerializer",
    "UserRowSerializer",
    "UserUpdateSerializer",
]
