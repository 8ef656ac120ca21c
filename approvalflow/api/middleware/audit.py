"""Audit logging middleware for FastAPI.

Logs every API request with:
- Principal (username and role, when authenticated)
- HTTP method, path and query
- Request body with sensitive fields redacted
- Response status and duration
- Client IP address
"""

import json
import logging
import time
import uuid
from typing import Any, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("approvalflow.audit")

# Paths that should not be logged (health checks, docs)
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

# Sensitive fields to redact from logs
SENSITIVE_FIELDS = {
    "password",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "secret",
    "authorization",
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive fields from data."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SENSITIVE_FIELDS else redact_sensitive(v)
            for k, v in data.items()
        }
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    return data


def log_level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class AuditMiddleware(BaseHTTPMiddleware):
    """Writes one audit log line per API request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        request_body = None
        if request.method in ("POST", "PUT", "PATCH"):
            body_bytes = await request.body()
            if body_bytes:
                try:
                    request_body = redact_sensitive(json.loads(body_bytes))
                except (json.JSONDecodeError, UnicodeDecodeError):
                    request_body = {"raw_size": len(body_bytes)}

        response = await call_next(request)
        duration_ms = int((time.time() - start_time) * 1000)

        # Set by the get_current_principal dependency
        principal = getattr(request.state, "principal", None)

        details = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params) if request.query_params else None,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "username": principal.username if principal else None,
            "role": principal.role.value if principal else None,
            "ip_address": get_client_ip(request),
            "request_body": request_body,
        }
        logger.log(
            log_level_for(response.status_code),
            f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms}ms)",
            extra={"audit": details},
        )

        response.headers["X-Request-ID"] = request_id
        return response
