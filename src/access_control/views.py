"""ViewSets for rule, group, and grant administration."""

from collections.abc import Mapping

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    PolymorphicProxySerializer,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from core.response import BaseViewSet, api_response
from .errors import ValidationError
from .permissions import AccessControlMixin, AclPermission
from .presenters import acl_row, rule_row
from .serializers import (
    AclRowSerializer,
    CreatedCountSerializer,
    DefaultAclSerializer,
    GrantSerializer,
    GroupCreateSerializer,
    GroupRowSerializer,
    GroupUpdateSerializer,
    RuleInputSerializer,
    RuleRowSerializer,
)

TRUE_VALUES = {"1", "true", "yes", "on"}


@extend_schema_view(
    list=extend_schema(
        parameters=[OpenApiParameter("admin_only", OpenApiTypes.BOOL)],
        responses=RuleRowSerializer(many=True),
    ),
    retrieve=extend_schema(responses=RuleRowSerializer),
    create=extend_schema(request=RuleInputSerializer, responses={201: RuleRowSerializer}),
    partial_update=extend_schema(request=RuleInputSerializer, responses=RuleRowSerializer),
    destroy=extend_schema(responses={204: None}),
)
class RuleViewSet(AccessControlMixin, BaseViewSet):
    """Rule catalog endpoints."""

    permission_classes = [AclPermission]
    acl_module = "rules"
    lookup_value_regex = r"\d+"

    def list(self, request):
        """List rules; ``?admin_only=false`` keeps the grantable ones only."""
        admin_only = request.query_params.get("admin_only")
        if admin_only is not None:
            admin_only = admin_only.lower() in TRUE_VALUES
        rules = self.services.rules.list_rules(admin_only=admin_only)
        return api_response(RuleRowSerializer([rule_row(rule) for rule in rules], many=True).data)

    def retrieve(self, request, pk=None):
        rule = self.services.rules.get(int(pk))
        return api_response(RuleRowSerializer(rule_row(rule)).data)

    def create(self, request):
        serializer = RuleInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        rule = self.services.rules.create(**serializer.validated_data)
        return api_response(RuleRowSerializer(rule_row(rule)).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        current = self.services.rules.get(int(pk))
        payload = {
            "module": current.module.name,
            "action": current.action,
            "admin_only": current.admin_only,
        }
        if not isinstance(request.data, Mapping):
            raise ValidationError("The request body must be a JSON object.")
        payload.update(request.data.items())
        serializer = RuleInputSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        rule = self.services.rules.update(current.pk, **serializer.validated_data)
        return api_response(RuleRowSerializer(rule_row(rule)).data)

    def destroy(self, request, pk=None):
        self.services.rules.delete(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    list=extend_schema(responses=GroupRowSerializer(many=True)),
    retrieve=extend_schema(responses=GroupRowSerializer),
    create=extend_schema(request=GroupCreateSerializer, responses={201: GroupRowSerializer}),
    partial_update=extend_schema(request=GroupUpdateSerializer, responses=GroupRowSerializer),
    destroy=extend_schema(responses={204: None}),
    missing_rules=extend_schema(responses=RuleRowSerializer(many=True)),
    add_all=extend_schema(request=None, responses=CreatedCountSerializer),
    default_acl=extend_schema(request=DefaultAclSerializer, responses=AclRowSerializer),
)
class GroupViewSet(AccessControlMixin, BaseViewSet):
    """Group endpoints, including the per-group ACL helpers."""

    permission_classes = [AclPermission]
    acl_module = "groups"
    lookup_value_regex = r"\d+"

    def list(self, request):
        rows = self.services.groups.list_groups()
        return api_response(GroupRowSerializer(rows, many=True).data)

    def retrieve(self, request, pk=None):
        return api_response(GroupRowSerializer(self.services.groups.group_row(int(pk))).data)

    def create(self, request):
        serializer = GroupCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        group = self.services.groups.create(**serializer.validated_data)
        row = self.services.groups.group_row(group.pk)
        return api_response(GroupRowSerializer(row).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = GroupUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        group = self.services.groups.update(
            int(pk),
            name=data.get("name"),
            is_default=data.get("is_default"),
            default_acl_id=data.get("default_acl"),
        )
        return api_response(GroupRowSerializer(self.services.groups.group_row(group.pk)).data)

    def destroy(self, request, pk=None):
        self.services.groups.delete(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get"], url_path="missing-rules")
    def missing_rules(self, request, pk=None):
        """Rules the group does not hold yet, for the "add ACL" screen."""
        rules = self.services.groups.missing_rules(int(pk))
        return api_response(RuleRowSerializer([rule_row(rule) for rule in rules], many=True).data)

    @action(detail=True, methods=["post"], url_path="add-all")
    def add_all(self, request, pk=None):
        created = self.services.grants.add_all(int(pk))
        return api_response({"created": created})

    @action(detail=True, methods=["post"], url_path="default-acl")
    def default_acl(self, request, pk=None):
        """Flag one of the group's grants as its landing grant."""
        serializer = DefaultAclSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        acl = self.services.groups.set_default_acl(int(pk), serializer.validated_data["acl"])
        return api_response(AclRowSerializer(acl_row(self.services.grants.get(acl.pk))).data)


@extend_schema_view(
    list=extend_schema(
        parameters=[OpenApiParameter("group", OpenApiTypes.INT, required=True)],
        responses=AclRowSerializer(many=True),
    ),
    retrieve=extend_schema(responses=AclRowSerializer),
    create=extend_schema(
        request=GrantSerializer,
        responses={
            201: PolymorphicProxySerializer(
                component_name="GrantResult",
                serializers=[AclRowSerializer, CreatedCountSerializer],
                resource_type_field_name=None,
            )
        },
    ),
    destroy=extend_schema(responses={204: None}),
)
class AclViewSet(AccessControlMixin, BaseViewSet):
    """Grant endpoints: list a group's grants, grant rules, revoke a grant."""

    permission_classes = [AclPermission]
    acl_module = "acl"
    lookup_value_regex = r"\d+"

    def list(self, request):
        group_id = request.query_params.get("group")
        if not group_id or not group_id.isdigit():
            raise ValidationError("The 'group' query parameter is required.")
        rows = self.services.grants.list_for_group(int(group_id))
        return api_response(AclRowSerializer(rows, many=True).data)

    def retrieve(self, request, pk=None):
        return api_response(AclRowSerializer(acl_row(self.services.grants.get(int(pk)))).data)

    def create(self, request):
        """Grant a single rule, or bulk-grant ``rule_ids`` skipping held ones."""
        serializer = GrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if "rule_ids" in data:
            created = self.services.grants.grant_many(data["group"], data["rule_ids"])
            return api_response({"created": created}, status=status.HTTP_201_CREATED)

        acl = self.services.grants.grant(data["group"], data["rule"])
        row = acl_row(self.services.grants.get(acl.pk))
        return api_response(AclRowSerializer(row).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        self.services.grants.revoke(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


__all__ = ["AclViewSet", "GroupViewSet", "RuleViewSet"]
