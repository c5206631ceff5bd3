"""Asset registration, lifecycle events and chain validation."""

import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from servicevault_api.auth.dependencies import get_tenant_id
from servicevault_api.db.session import get_db
from servicevault_api.ledger.errors import (
    AssetNotFoundError,
    CanonicalizationError,
    ChainConflictError,
    ChainLockTimeout,
    ChainOrderError,
    ImmutableEventError,
    LedgerError,
)
from servicevault_api.ledger.hashchain import format_timestamp, to_utc
from servicevault_api.ledger.service import EventLedgerService, event_to_dict
from servicevault_api.models import Asset
from servicevault_api.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["assets"])

# INSTALL is written by asset registration only
MANUAL_EVENT_TYPES = ["SERVICE", "REPAIR", "INSPECTION", "WARRANTY", "RECALL", "NOTE", "TRANSFER"]


class AssetCreate(BaseModel):
    """Asset registration request."""

    name: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100, description="PLUMBING, ELECTRICAL, HVAC, VEHICLE, etc.")
    brand: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    notes: Optional[str] = Field(None, description="Installer notes, recorded on the INSTALL event")
    installed_at: Optional[datetime] = None
    asset_type: Literal["INFRASTRUCTURE", "PERSONAL"] = "INFRASTRUCTURE"
    photo_urls: list[str] = Field(default_factory=list)
    created_by: Optional[str] = Field(None, description="Acting user identifier")


class AssetResponse(BaseModel):
    """Asset response."""

    id: str
    tenant_id: int
    name: str
    category: str
    brand: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    notes: Optional[str] = None
    installed_at: Optional[datetime] = None
    asset_type: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    """A chained asset event as stored."""

    id: str
    asset_id: str
    sequence: int
    type: str
    data: Any = None
    photo_urls: list[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    created_at: str
    prev_hash: Optional[str] = None
    hash: str


class AssetCreateResponse(BaseModel):
    """Registered asset with its INSTALL event."""

    asset: AssetResponse
    event: EventResponse


class EventCreate(BaseModel):
    """Lifecycle event request."""

    type: str
    note: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    photo_urls: list[str] = Field(default_factory=list)
    created_by: Optional[str] = Field(None, description="Acting user identifier")


class Pagination(BaseModel):
    """Pagination metadata."""

    total: int
    limit: int
    offset: int
    has_more: bool


class EventPage(BaseModel):
    """One page of an asset's events, newest first."""

    events: list[EventResponse]
    pagination: Pagination


class ChainValidationResponse(BaseModel):
    """Integrity check result for one asset chain."""

    asset_id: str
    event_count: int
    is_valid: bool
    errors: list[str]
    first_broken_index: Optional[int] = None


def _ledger_http_error(error: LedgerError) -> HTTPException:
    """Translate ledger failures to HTTP errors."""
    if isinstance(error, AssetNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    if isinstance(error, (CanonicalizationError, ChainOrderError)):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    if isinstance(error, (ChainConflictError, ImmutableEventError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, ChainLockTimeout):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(error),
            headers={"Retry-After": "1"},
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Ledger error")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return to_utc(value).replace(tzinfo=None)


@router.post("/assets", response_model=AssetCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_asset(
    asset_data: AssetCreate,
    request: Request,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Register an asset and start its chain with an INSTALL event."""
    installed_at = _naive_utc(asset_data.installed_at)
    asset = Asset(
        tenant_id=tenant_id,
        name=asset_data.name,
        category=asset_data.category,
        brand=asset_data.brand,
        model=asset_data.model,
        serial=asset_data.serial,
        notes=asset_data.notes,
        installed_at=installed_at,
        asset_type=asset_data.asset_type,
        status="ACTIVE",
    )
    db.add(asset)
    db.flush()

    service = EventLedgerService(db, tenant_id=tenant_id)
    try:
        event = service.append_event(
            asset.id,
            "INSTALL",
            data={
                "note": asset_data.notes or "Initial asset registration",
                "installDate": format_timestamp(installed_at or datetime.now(timezone.utc)),
            },
            photo_urls=asset_data.photo_urls,
            created_by=asset_data.created_by,
        )
    except LedgerError as e:
        raise _ledger_http_error(e) from e

    logger.info(
        "Registered asset",
        extra={
            "tenant_id": tenant_id,
            "asset_id": asset.id,
            "correlation_id": getattr(request.state, "correlation_id", None),
        },
    )
    return AssetCreateResponse(
        asset=AssetResponse.model_validate(asset),
        event=EventResponse(**event_to_dict(event)),
    )


@router.get("/assets/{asset_id}", response_model=AssetResponse)
async def get_asset(
    asset_id: str,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Get an asset."""
    try:
        asset = EventLedgerService(db, tenant_id=tenant_id).get_asset(asset_id)
    except LedgerError as e:
        raise _ledger_http_error(e) from e
    return asset


@router.post(
    "/assets/{asset_id}/events",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_event(
    asset_id: str,
    event_data: EventCreate,
    request: Request,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Log a lifecycle event on an asset's chain."""
    if event_data.type not in MANUAL_EVENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid event type", "valid_types": MANUAL_EVENT_TYPES},
        )

    note = event_data.note or event_data.data.get("note") or f"{event_data.type} event logged"
    data = {**event_data.data, "note": note}

    service = EventLedgerService(db, tenant_id=tenant_id)
    try:
        event = service.append_event(
            asset_id,
            event_data.type,
            data=data,
            photo_urls=event_data.photo_urls,
            created_by=event_data.created_by,
        )
    except LedgerError as e:
        logger.info(
            f"Event append rejected: {e}",
            extra={
                "tenant_id": tenant_id,
                "asset_id": asset_id,
                "correlation_id": getattr(request.state, "correlation_id", None),
            },
        )
        raise _ledger_http_error(e) from e

    return EventResponse(**event_to_dict(event))


@router.get("/assets/{asset_id}/events", response_model=EventPage)
async def list_events(
    asset_id: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Get an asset's events, newest first."""
    settings = get_settings()
    limit = min(limit or settings.events_page_default_limit, settings.events_page_max_limit)

    try:
        events, total = EventLedgerService(db, tenant_id=tenant_id).list_events(asset_id, limit, offset)
    except LedgerError as e:
        raise _ledger_http_error(e) from e

    return EventPage(
        events=[EventResponse(**event_to_dict(event)) for event in events],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        ),
    )


@router.get("/assets/{asset_id}/events/export", response_model=list[EventResponse])
async def export_events(
    asset_id: str,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Get an asset's full chain in creation order for offline verification."""
    try:
        events = EventLedgerService(db, tenant_id=tenant_id).get_asset_events(asset_id)
    except LedgerError as e:
        raise _ledger_http_error(e) from e
    return [EventResponse(**event_to_dict(event)) for event in events]


@router.get("/assets/{asset_id}/validate-chain", response_model=ChainValidationResponse)
async def validate_chain(
    asset_id: str,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """Recompute an asset's chain; a broken chain is a result, not an error."""
    try:
        validation = EventLedgerService(db, tenant_id=tenant_id).verify_chain(asset_id)
    except LedgerError as e:
        raise _ledger_http_error(e) from e

    return ChainValidationResponse(asset_id=asset_id, **validation.to_dict())
