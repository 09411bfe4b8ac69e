from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.settings import api_settings

from core.models import Admin, Studio, User
from core.tokens import PRINCIPAL_TYPE_CLAIM


class PrincipalJWTAuthentication(JWTAuthentication):
    """Bearer-token authentication resolving either an Admin or a studio User.

    The `type` claim selects the credential table. Users must be active and
    belong to an active studio on every request, not just at login.
    """

    def get_user(self, validated_token):
        try:
            subject_id = validated_token[api_settings.USER_ID_CLAIM]
            principal_type = validated_token[PRINCIPAL_TYPE_CLAIM]
        except KeyError:
            raise InvalidToken("Token contained no recognizable user identification")

        if principal_type == Admin.principal_type:
            admin = Admin.objects.filter(id=subject_id).first()
            if admin is None or not admin.is_active:
                raise AuthenticationFailed("Admin not found.", code="user_not_found")
            return admin

        if principal_type == User.principal_type:
            user = User.objects.select_related("studio").filter(id=subject_id).first()
            if user is None or not user.is_active:
                raise AuthenticationFailed("User not found or inactive.", code="user_inactive")
            if user.studio.status != Studio.Status.ACTIVE:
                raise AuthenticationFailed("Studio is not active.", code="studio_inactive")
            return user

        raise InvalidToken("Invalid token type")
