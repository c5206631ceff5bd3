"""FastAPI dependencies for tenant and admin authentication."""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from servicevault_api.settings import get_settings


def get_tenant_id(request: Request) -> int:
    """Tenant resolved by the auth middleware."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide x-api-key header.",
        )
    return tenant_id


def require_admin_key(x_admin_key: Optional[str] = Header(default=None)) -> None:
    """Guard admin endpoints with the configured admin key."""
    admin_api_key = get_settings().admin_api_key
    if not admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API is disabled. Set ADMIN_API_KEY to enable it.",
        )
    if not x_admin_key or not hmac.compare_digest(x_admin_key, admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key.",
        )
