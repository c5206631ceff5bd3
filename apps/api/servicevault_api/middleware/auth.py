"""Authentication middleware to extract tenant from API key."""

import logging

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from servicevault_api.auth.api_key import get_api_key_record
from servicevault_api.auth.scopes import validate_scopes
from servicevault_api.db import session as db_session

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/health", "/ready", "/docs", "/openapi.json", "/"}


def is_public_path(path: str) -> bool:
    """Paths served without tenant credentials."""
    return path in PUBLIC_PATHS or path.startswith("/metrics")


class AuthMiddleware(BaseHTTPMiddleware):
    """Extract and validate tenant from API key."""

    async def dispatch(self, request: Request, call_next):
        """Process request with tenant extraction."""
        if is_public_path(request.url.path):
            return await call_next(request)

        # Admin endpoints authenticate with the admin key instead
        if request.url.path.startswith("/admin"):
            return await call_next(request)

        api_key = request.headers.get("x-api-key")
        if not api_key:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Missing API key. Provide x-api-key header."},
            )

        db = db_session.SessionLocal()
        try:
            api_key_obj = get_api_key_record(db, api_key)
            if not api_key_obj:
                return JSONResponse(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    content={"detail": "Invalid or revoked API key."},
                )

            tenant = api_key_obj.tenant
            if tenant.status != "active":
                return JSONResponse(
                    status_code=status.HTTP_403_FORBIDDEN,
                    content={"detail": f"Tenant status is {tenant.status}."},
                )

            try:
                scopes = validate_scopes(api_key_obj.scopes)
            except ValueError:
                logger.error("Stored API key scopes are malformed", extra={"api_key_id": api_key_obj.id})
                scopes = []

            request.state.tenant_id = tenant.id
            request.state.api_key_scopes = scopes

            correlation_id = getattr(request.state, "correlation_id", None)
            logger.info(
                "Authenticated request",
                extra={
                    "tenant_id": tenant.id,
                    "correlation_id": correlation_id,
                    "path": request.url.path,
                },
            )
        finally:
            db.close()

        return await call_next(request)
