import logging

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from core.models import Admin, User

logger = logging.getLogger("security.authorization")

STUDIO_ROLES = {User.Role.OWNER, User.Role.PHOTOGRAPHER, User.Role.ASSISTANT}

ROLE_CAPABILITY_MATRIX = {
    "customers.view": STUDIO_ROLES,
    "customers.manage": STUDIO_ROLES,
    "customers.delete": {User.Role.OWNER},
    "invoices.view": STUDIO_ROLES,
    "invoices.manage": {User.Role.OWNER},
    "payments.view": STUDIO_ROLES,
    "payments.manage": {User.Role.OWNER},
    "services.view": STUDIO_ROLES,
    "services.manage": {User.Role.OWNER},
    "bookings.view": STUDIO_ROLES,
    "bookings.manage": STUDIO_ROLES,
    "analytics.view": STUDIO_ROLES,
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if isinstance(user, Admin):
        return None
    return getattr(user, "role", None)


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if isinstance(user, Admin):
        return False
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


def get_request_studio_id(request):
    """Return the caller's studio id, taken from the authenticated principal only."""
    studio_id = getattr(request.user, "studio_id", None)
    if not studio_id:
        logger.warning(
            "studio_required principal=%s path=%s",
            getattr(request.user, "email", "anonymous"),
            request.path,
        )
        raise PermissionDenied("User must belong to a studio.")
    return studio_id


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s principal=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "email", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
        return allowed


class IsPlatformAdmin(BasePermission):
    message = "Only platform administrators may perform this action."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and isinstance(request.user, Admin))
