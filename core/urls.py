from django.urls import path

from core.views import (
    AdminLoginView,
    AdminRegisterView,
    LogoutView,
    MeView,
    RegisterView,
    TokenRefreshView,
    UserLoginView,
    healthz,
    readyz,
)

urlpatterns = [
    path("auth/login/", UserLoginView.as_view(), name="auth-login"),
    path("auth/admin/login/", AdminLoginView.as_view(), name="auth-admin-login"),
    path("auth/register/", RegisterView.as_view(), name="auth-register"),
    path("auth/admin/register/", AdminRegisterView.as_view(), name="auth-admin-register"),
    path("auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("auth/logout/", LogoutView.as_view(), name="auth-logout"),
    path("auth/me/", MeView.as_view(), name="auth-me"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
