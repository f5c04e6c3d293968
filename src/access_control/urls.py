"""Routing for rule, group, and grant administration endpoints."""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AclViewSet, GroupViewSet, RuleViewSet

router = DefaultRouter()
router.register(r"rules", RuleViewSet, basename="rule")
router.register(r"groups", GroupViewSet, basename="group")
router.register(r"acl", AclViewSet, basename="acl")

urlpatterns = [
    path("", include(router.urls)),
]
