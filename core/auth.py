"""Credential verification, token issuance and refresh-token storage.

Admins and studio users share one token format. Each subject has at most one
stored refresh token; issuing a new pair overwrites the previous one, so a
refresh token is only accepted while it is the latest one issued.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import RefreshToken

from common.exceptions import Conflict
from core.models import Admin, Studio, User
from core.tokens import EMAIL_CLAIM, PRINCIPAL_TYPE_CLAIM, STUDIO_ID_CLAIM

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials."
INVALID_REFRESH_TOKEN_MESSAGE = "Invalid refresh token."


def refresh_token_cache_key(subject_id):
    return f"refresh_token:{subject_id}"


def _normalize_email(email):
    return (email or "").strip().lower()


def issue_tokens(principal):
    """Sign an access/refresh pair for the principal and store the refresh token."""
    refresh = RefreshToken()
    refresh[api_settings.USER_ID_CLAIM] = str(principal.pk)
    refresh[EMAIL_CLAIM] = principal.email
    refresh[PRINCIPAL_TYPE_CLAIM] = principal.principal_type
    studio_id = getattr(principal, "studio_id", None)
    if studio_id:
        refresh[STUDIO_ID_CLAIM] = str(studio_id)

    refresh_token = str(refresh)
    access_token = str(refresh.access_token)

    cache.set(
        refresh_token_cache_key(principal.pk),
        refresh_token,
        settings.REFRESH_TOKEN_STORE_TIMEOUT,
    )
    return {"accessToken": access_token, "refreshToken": refresh_token}


def user_payload(user):
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "studio_id": str(user.studio_id),
        "studio": {
            "id": str(user.studio.id),
            "name": user.studio.name,
            "slug": user.studio.slug,
        },
    }


def admin_payload(admin):
    return {"id": str(admin.id), "email": admin.email, "name": admin.name}


def user_login(email, password):
    user = User.objects.select_related("studio").filter(email=_normalize_email(email)).first()

    if user is None or not user.is_active:
        logger.info("login_failed", extra={"email": _normalize_email(email), "principal_type": "user"})
        raise AuthenticationFailed(INVALID_CREDENTIALS_MESSAGE)

    if user.studio.status != Studio.Status.ACTIVE:
        logger.info("login_rejected_inactive_studio", extra={"email": user.email, "studio_id": user.studio_id})
        raise AuthenticationFailed("Studio is not active.")

    if not user.check_password(password):
        logger.info("login_failed", extra={"email": user.email, "principal_type": "user"})
        raise AuthenticationFailed(INVALID_CREDENTIALS_MESSAGE)

    tokens = issue_tokens(user)
    logger.info("login_succeeded", extra={"principal_id": user.id, "principal_type": "user", "studio_id": user.studio_id})
    return {"user": user_payload(user), **tokens}


def admin_login(email, password):
    admin = Admin.objects.filter(email=_normalize_email(email)).first()

    if admin is None or not admin.is_active or not admin.check_password(password):
        logger.info("login_failed", extra={"email": _normalize_email(email), "principal_type": "admin"})
        raise AuthenticationFailed(INVALID_CREDENTIALS_MESSAGE)

    tokens = issue_tokens(admin)
    logger.info("login_succeeded", extra={"principal_id": admin.id, "principal_type": "admin"})
    return {"admin": admin_payload(admin), **tokens}


def register_studio_owner(*, email, name, password, studio_name, studio_slug, studio_email="", studio_phone=""):
    """Create a studio together with its owner account and sign the owner in."""
    email = _normalize_email(email)
    if User.objects.filter(email=email).exists():
        raise Conflict("User with this email already exists.")
    if Studio.objects.filter(slug=studio_slug).exists():
        raise Conflict("Studio with this slug already exists.")

    try:
        with transaction.atomic():
            studio = Studio.objects.create(
                name=studio_name,
                slug=studio_slug,
                email=studio_email or email,
                phone=studio_phone,
                status=Studio.Status.ACTIVE,
            )
            user = User.objects.create_user(
                email=email,
                password=password,
                name=name,
                studio=studio,
                role=User.Role.OWNER,
            )
    except IntegrityError:
        raise Conflict("User or studio already exists.")

    logger.info("studio_registered", extra={"principal_id": user.id, "studio_id": studio.id})
    return {"user": user_payload(user), **issue_tokens(user)}


def create_admin(*, email, name, password):
    email = _normalize_email(email)
    if Admin.objects.filter(email=email).exists():
        raise Conflict("Admin with this email already exists.")

    try:
        admin = Admin.objects.create_user(email=email, password=password, name=name)
    except IntegrityError:
        raise Conflict("Admin with this email already exists.")

    logger.info("admin_created", extra={"principal_id": admin.id, "principal_type": "admin"})
    return admin_payload(admin)


def refresh_tokens(refresh_token):
    try:
        token = RefreshToken(refresh_token)
    except TokenError:
        logger.info("refresh_rejected", extra={"principal_type": None})
        raise AuthenticationFailed(INVALID_REFRESH_TOKEN_MESSAGE)

    subject_id = token.get(api_settings.USER_ID_CLAIM)
    principal_type = token.get(PRINCIPAL_TYPE_CLAIM)
    stored_token = cache.get(refresh_token_cache_key(subject_id)) if subject_id else None
    if not stored_token or stored_token != refresh_token:
        logger.info("refresh_rejected", extra={"principal_id": subject_id, "principal_type": principal_type})
        raise AuthenticationFailed(INVALID_REFRESH_TOKEN_MESSAGE)

    principal = _load_principal(principal_type, subject_id)
    if principal is None:
        raise AuthenticationFailed(INVALID_REFRESH_TOKEN_MESSAGE)

    return issue_tokens(principal)


def logout(principal):
    """Forget the stored refresh token. Access tokens stay valid until they expire."""
    cache.delete(refresh_token_cache_key(principal.pk))
    logger.info("logout", extra={"principal_id": principal.pk, "principal_type": principal.principal_type})


def _load_principal(principal_type, subject_id):
    if principal_type == Admin.principal_type:
        return Admin.objects.filter(id=subject_id, is_active=True).first()
    if principal_type == User.principal_type:
        return (
            User.objects.select_related("studio")
            .filter(id=subject_id, is_active=True, studio__status=Studio.Status.ACTIVE)
            .first()
        )
    return None
