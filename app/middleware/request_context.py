"""
RequestContext middleware: per-request id, client IP and user agent.

Values land on ``request.state`` for the audit log and are bound into the
structlog context so every log line emitted while serving the request
carries the same ``request_id``.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Adds to request.state:
    - request_id: UUID for tracing this request
    - ip_address: client IP address
    - user_agent: client user agent string

    Echoes the id back in the X-Request-ID response header.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.ip_address = self._extract_client_ip(request)
        request.state.user_agent = request.headers.get("user-agent")

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=request.state.ip_address,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Client IP, honouring X-Forwarded-For only from a trusted proxy.
        """
        direct_ip = request.client.host if request.client else None
        if not settings.TRUST_X_FORWARDED_FOR or direct_ip not in settings.TRUSTED_PROXY_IPS:
            return direct_ip

        forwarded_for = request.headers.get("x-forwarded-for")
        if not forwarded_for:
            return direct_ip

        # "client, proxy1, proxy2": first entry is the original client
        return forwarded_for.split(",")[0].strip()
