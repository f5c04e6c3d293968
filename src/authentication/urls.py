"""URL patterns for authentication endpoints and user administration."""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import LandingView, LoginView, LogoutAllView, LogoutView, MeView, RefreshView, UserViewSet

router = SimpleRouter()
router.register(r"users", UserViewSet, basename="user")

urlpatterns = [
    path("auth/login/", LoginView.as_view(), name="auth-login"),
    path("auth/refresh/", RefreshView.as_view(), name="auth-refresh"),
    path("auth/logout/", LogoutView.as_view(), name="auth-logout"),
    path("auth/logout-all/", LogoutAllView.as_view(), name="auth-logout-all"),
    path("auth/me/", MeView.as_view(), name="auth-me"),
    path("auth/landing/", LandingView.as_view(), name="auth-landing"),
    path("", include(router.urls)),
]
