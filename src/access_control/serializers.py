"""Serializers for rule, group, and grant endpoints.

Input serializers only check the shape of the payload; naming rules,
uniqueness and the default invariants are enforced by the services. Output
serializers render the read-only rows from ``presenters``.
"""

from rest_framework import serializers

from .models import Module


class RuleInputSerializer(serializers.Serializer):
    """Create or edit a rule, addressing the module by name."""

    module = serializers.SlugRelatedField(slug_field="name", queryset=Module.objects.all())
    action = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    admin_only = serializers.BooleanField(required=False, default=False)


class RuleRowSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    module = serializers.CharField(source="module_name")
    action = serializers.CharField(allow_null=True)
    admin_only = serializers.BooleanField()
    module_action = serializers.CharField()


class GroupCreateSerializer(serializers.Serializer):
    name = serializers.CharField(allow_blank=True)
    is_default = serializers.BooleanField(required=False, default=False)


class GroupUpdateSerializer(serializers.Serializer):
    """Partial group change; ``default_acl`` moves the landing grant."""

    name = serializers.CharField(required=False, allow_blank=True)
    is_default = serializers.BooleanField(required=False)
    default_acl = serializers.IntegerField(required=False, allow_null=True)


class GroupRowSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    is_default = serializers.BooleanField()
    user_count = serializers.IntegerField()
    acl_count = serializers.IntegerField()
    landing_module = serializers.CharField(allow_null=True)
    landing_action = serializers.CharField(allow_null=True)
    can_be_deleted = serializers.BooleanField()


class DefaultAclSerializer(serializers.Serializer):
    acl = serializers.IntegerField()


class GrantSerializer(serializers.Serializer):
    """Grant one rule (``rule``) or several at once (``rule_ids``) to a group."""

    group = serializers.IntegerField()
    rule = serializers.IntegerField(required=False)
    rule_ids = serializers.ListField(child=serializers.IntegerField(), required=False, allow_empty=False)

    def validate(self, attrs):
        """Require exactly one of ``rule`` and ``rule_ids``."""
        if ("rule" in attrs) == ("rule_ids" in attrs):
            raise serializers.ValidationError("Provide either 'rule' or 'rule_ids'.")
        return attrs


class AclRowSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    rule = serializers.IntegerField(source="rule_id")
    group = serializers.IntegerField(source="group_id", allow_null=True)
    module = serializers.CharField(source="module_name")
    action = serializers.CharField(allow_null=True)
    is_default = serializers.BooleanField()
    module_action = serializers.CharField()


class CreatedCountSerializer(serializers.Serializer):
    """Number of grants written by a bulk operation."""

    created = serializers.IntegerField()


class LandingSerializer(serializers.Serializer):
    module = serializers.CharField()
    action = serializers.CharField(allow_null=True)


__all__ = [
    "AclRowSerializer",
    "CreatedCountSerializer",
    "DefaultAclSerializer",
    "GrantSerializer",
    "GroupCreateSerializer",
    "GroupRowSerializer",
    "GroupUpdateSerializer",
    "LandingSerializer",
    "RuleInputSerializer",
    "RuleRowSerializer",
]
