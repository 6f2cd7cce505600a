"""Authentication middleware to extract tenant from API key."""

import logging

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from schola_api.auth.api_key import get_tenant_by_api_key
from schola_api.db.session import SessionLocal

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/health", "/metrics", "/docs", "/openapi.json"}


class AuthMiddleware(BaseHTTPMiddleware):
    """Extract and validate tenant from API key."""

    async def dispatch(self, request: Request, call_next):
        """Process request with tenant extraction."""
        path = request.url.path.rstrip("/") or "/"
        if path in PUBLIC_PATHS or path.startswith("/metrics"):
            return await call_next(request)

        api_key = request.headers.get("x-api-key")
        if not api_key:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Missing API key. Provide x-api-key header."},
            )

        db = SessionLocal()
        try:
            tenant = get_tenant_by_api_key(db, api_key)
            if not tenant:
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content={"detail": "Invalid or revoked API key."},
                )

            if tenant.status != "active":
                return JSONResponse(
                    status_code=status.HTTP_403_FORBIDDEN,
                    content={"detail": f"Tenant status is {tenant.status}."},
                )

            request.state.tenant_id = tenant.id

            logger.info(
                "Authenticated request",
                extra={
                    "tenant_id": tenant.id,
                    "correlation_id": getattr(request.state, "correlation_id", None),
                    "path": request.url.path,
                },
            )
        finally:
            db.close()

        return await call_next(request)
