"""
Proxy Headers Middleware
"""
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """
    Trust X-Forwarded-Proto from the reverse proxy so redirects keep the
    client's scheme.
    """
    async def dispatch(self, request: Request, call_next):
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto
            logger.debug(f"Proxy detected: scheme={forwarded_proto}, host={request.headers.get('X-Forwarded-Host')}")

        return await call_next(request)
