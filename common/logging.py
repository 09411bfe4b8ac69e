from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""

    extra_fields = (
        "request_id",
        "path",
        "method",
        "status_code",
        "duration_ms",
        "remote_addr",
        "principal_id",
        "principal_type",
        "studio_id",
        "invoice_id",
        "payment_id",
        "customer_id",
        "amount",
        "invoice_status",
        "email",
    )

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self.extra_fields:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value) if isinstance(value, uuid.UUID) else value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class RequestLogMiddleware:
    """Attach/propagate request ID and emit per-request access logs.

    Server errors are logged at ERROR, client errors at WARNING and everything
    else at INFO.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        started_at = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.request_id = request_id

        response = self.get_response(request)

        duration_ms = round((time.perf_counter() - started_at) * 1000, 2)
        principal_id = None
        principal_type = None
        studio_id = None
        # DRF authenticates lazily on its own Request, and copies the principal
        # back onto the Django request once resolved.
        user = getattr(request, "user", None)
        if user is not None and getattr(user, "is_authenticated", False):
            principal_id = str(user.pk)
            principal_type = getattr(user, "principal_type", None)
            studio_id = getattr(user, "studio_id", None)

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO

        self.logger.log(
            level,
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.META.get("REMOTE_ADDR"),
                "principal_id": principal_id,
                "principal_type": principal_type,
                "studio_id": studio_id,
            },
        )
        response["X-Request-ID"] = request_id
        return response
