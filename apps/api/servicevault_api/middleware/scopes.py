"""API key scope enforcement middleware."""

import logging
import re
from typing import Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)

# (path pattern, method) -> required scopes; first match wins
SCOPE_RULES = [
    (re.compile(r"^/v1/assets/[^/]+/validate-chain$"), "GET", ["audit:read"]),
    (re.compile(r"^/v1/assets/[^/]+/events(/export)?$"), "GET", ["events:read"]),
    (re.compile(r"^/v1/assets/[^/]+/events$"), "POST", ["events:write"]),
    (re.compile(r"^/v1/assets$"), "POST", ["assets:write"]),
    (re.compile(r"^/v1/assets/[^/]+$"), "GET", ["assets:read"]),
]


def get_required_scope(path: str, method: str) -> Optional[list[str]]:
    """Get required scope for a path and HTTP method."""
    normalized_path = path.rstrip("/") or "/"
    for pattern, rule_method, scopes in SCOPE_RULES:
        if rule_method == method and pattern.match(normalized_path):
            return scopes
    return None


class ScopeMiddleware(BaseHTTPMiddleware):
    """Enforce API key scopes per endpoint.

    Runs after ``AuthMiddleware``, which leaves the key's scopes on
    ``request.state``.
    """

    async def dispatch(self, request: Request, call_next):
        """Check API key scopes before processing request."""
        required_scopes = get_required_scope(request.url.path, request.method)
        if not required_scopes:
            return await call_next(request)

        scopes = getattr(request.state, "api_key_scopes", None)
        if scopes is None:
            return await call_next(request)  # Auth middleware will handle this

        if not any(scope in scopes for scope in required_scopes):
            logger.info(
                "Rejected request lacking scope",
                extra={
                    "tenant_id": getattr(request.state, "tenant_id", None),
                    "path": request.url.path,
                    "required_scopes": required_scopes,
                },
            )
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={
                    "detail": f"Insufficient permissions. Required scopes: {required_scopes}, "
                    f"API key has: {scopes}",
                },
            )

        return await call_next(request)
