"""API key authentication with scalable prefix+digest lookup."""

import hashlib
import hmac
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from servicevault_api.auth.scopes import format_scopes
from servicevault_api.models import APIKey, Tenant
from servicevault_api.settings import get_settings

settings = get_settings()


def compute_key_prefix(raw_key: str) -> str:
    """Compute prefix (first 8 chars) of API key."""
    return raw_key[:8] if len(raw_key) >= 8 else raw_key


def compute_key_digest(raw_key: str) -> str:
    """Compute HMAC-SHA256 digest of API key."""
    secret = settings.secret_key.encode()
    return hmac.new(secret, raw_key.encode(), hashlib.sha256).hexdigest()


def issue_api_key(
    db: Session,
    tenant: Tenant,
    raw_key: str,
    scopes: list[str],
    label: Optional[str] = None,
) -> APIKey:
    """Store a new API key for a tenant. The raw key is never persisted."""
    if len(raw_key) < 8:
        raise ValueError("API keys must be at least 8 characters long")

    api_key = APIKey(
        tenant_id=tenant.id,
        prefix=compute_key_prefix(raw_key),
        digest=compute_key_digest(raw_key),
        label=label,
        scopes=format_scopes(scopes),
        is_active=True,
    )
    db.add(api_key)
    db.flush()
    return api_key


def get_api_key_record(db: Session, api_key: str) -> Optional[APIKey]:
    """Get the active API key record matching a raw key."""
    if not api_key or len(api_key) < 8:
        return None

    prefix = compute_key_prefix(api_key)
    digest = compute_key_digest(api_key)

    # Query with indexed prefix lookup (O(1) with index)
    candidates = (
        db.query(APIKey)
        .filter(
            APIKey.prefix == prefix,
            APIKey.is_active == True,  # noqa: E712
            APIKey.revoked_at.is_(None),
        )
        .all()
    )

    for api_key_obj in candidates:
        # Constant-time comparison of digest
        if hmac.compare_digest(api_key_obj.digest, digest):
            api_key_obj.last_used_at = datetime.utcnow()
            db.commit()
            return api_key_obj

    return None
