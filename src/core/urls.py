"""Root URL configuration for the ACL backend API."""
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView

urlpatterns = [
    path("", include("authentication.urls")),
    path("", include("access_control.urls")),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
]
