"""Admin routes for tenant management and integrity audits."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from kombu.exceptions import OperationalError
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from servicevault_api.auth.api_key import issue_api_key
from servicevault_api.auth.dependencies import require_admin_key
from servicevault_api.auth.scopes import DEFAULT_SCOPES, validate_scopes
from servicevault_api.celery_client import enqueue_chain_audit
from servicevault_api.db.session import get_db
from servicevault_api.models import Tenant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


class TenantCreate(BaseModel):
    """Tenant creation request."""

    label: str = Field(..., min_length=1, max_length=255)
    api_key: str = Field(..., min_length=8)
    scopes: Optional[list[str]] = None


class TenantResponse(BaseModel):
    """Tenant response."""

    id: int
    label: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class AuditRequest(BaseModel):
    """Integrity audit request; all tenants when tenant_id is omitted."""

    tenant_id: Optional[int] = None


class AuditQueuedResponse(BaseModel):
    """Queued audit task."""

    task_id: str
    status: str = "queued"
    tenant_id: Optional[int] = None


@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    tenant_data: TenantCreate,
    db: Session = Depends(get_db),
):
    """Create a new tenant with its initial API key."""
    existing = db.query(Tenant).filter(Tenant.label == tenant_data.label).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Tenant with label '{tenant_data.label}' already exists",
        )

    try:
        scopes = validate_scopes(tenant_data.scopes) if tenant_data.scopes is not None else DEFAULT_SCOPES
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    tenant = Tenant(label=tenant_data.label, status="active")
    db.add(tenant)
    db.flush()

    issue_api_key(db, tenant, tenant_data.api_key, scopes, label="Initial API Key")

    db.commit()
    db.refresh(tenant)

    logger.info("Created tenant", extra={"tenant_id": tenant.id})
    return tenant


@router.post(
    "/integrity-audits",
    response_model=AuditQueuedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_integrity_audit(
    audit_request: AuditRequest,
    request: Request,
):
    """Queue a chain integrity audit in the worker."""
    correlation_id = getattr(request.state, "correlation_id", None)
    try:
        task_id = enqueue_chain_audit(audit_request.tenant_id, correlation_id=correlation_id)
    except (ConnectionError, TimeoutError, OperationalError) as e:
        logger.error(
            f"Could not enqueue integrity audit: {e}",
            extra={"tenant_id": audit_request.tenant_id, "correlation_id": correlation_id},
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "failed",
                "error_code": "BROKER_UNAVAILABLE",
                "detail": "Task broker unavailable. Retry later.",
            },
            headers={"Retry-After": "30"},
        )

    return AuditQueuedResponse(task_id=task_id, tenant_id=audit_request.tenant_id)
