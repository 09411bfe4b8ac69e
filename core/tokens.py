"""Custom claims carried by access and refresh tokens."""

PRINCIPAL_TYPE_CLAIM = "type"
STUDIO_ID_CLAIM = "studio_id"
EMAIL_CLAIM = "email"
