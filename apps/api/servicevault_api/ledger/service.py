"""Asset event ledger service with hash chaining."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from servicevault_api.ledger.errors import AssetNotFoundError, ChainConflictError, ChainOrderError
from servicevault_api.ledger.hashchain import (
    ChainValidation,
    format_timestamp,
    mint_event,
    truncate_to_millis,
    validate_hash_chain,
)
from servicevault_api.ledger.locks import AssetLockProvider, get_lock_provider
from servicevault_api.models import Asset, AssetEvent
from servicevault_api.services.base import BaseService
from servicevault_api.utils.metrics import (
    chain_validations,
    ledger_append_duration,
    ledger_append_failures,
    ledger_events_appended,
)

logger = logging.getLogger(__name__)


def event_to_dict(event: AssetEvent) -> dict[str, Any]:
    """Serialize a stored event with its timestamp in hashed form."""
    return {
        "id": event.id,
        "asset_id": event.asset_id,
        "sequence": event.sequence,
        "type": event.type,
        "data": event.data,
        "photo_urls": event.photo_urls or [],
        "created_by": event.created_by,
        "created_at": format_timestamp(event.created_at),
        "prev_hash": event.prev_hash,
        "hash": event.hash,
    }


class EventLedgerService(BaseService):
    """Tamper-evident, per-asset event ledger."""

    def __init__(
        self,
        db: Session,
        tenant_id: Optional[int] = None,
        locks: Optional[AssetLockProvider] = None,
    ):
        """Initialize ledger service."""
        super().__init__(db, tenant_id)
        self.locks = locks or get_lock_provider()

    def get_asset(self, asset_id: str, for_update: bool = False) -> Asset:
        """Get an asset visible to this tenant."""
        query = self._scope_to_tenant(self.db.query(Asset), Asset).filter(Asset.id == asset_id)
        if for_update:
            query = query.with_for_update()
        asset = query.first()
        if not asset:
            raise AssetNotFoundError(f"Asset {asset_id} not found")
        return asset

    def list_assets(self) -> list[Asset]:
        """Get every asset visible to this tenant, oldest first."""
        return self._scope_to_tenant(self.db.query(Asset), Asset).order_by(Asset.created_at.asc()).all()

    def _get_chain_tail(self, asset_id: str) -> Optional[AssetEvent]:
        """Get the most recently appended event for an asset."""
        return (
            self.db.query(AssetEvent)
            .filter(AssetEvent.asset_id == asset_id)
            .order_by(AssetEvent.created_at.desc(), AssetEvent.sequence.desc())
            .first()
        )

    def _resolve_created_at(self, tail: Optional[AssetEvent], created_at: Optional[datetime]) -> datetime:
        """Fix the new event's time so it never sorts before the tail."""
        if created_at is None:
            created_at = datetime.now(timezone.utc)
            if tail is not None:
                created_at = max(truncate_to_millis(created_at), truncate_to_millis(tail.created_at))
            return created_at

        if tail is not None and truncate_to_millis(created_at) < truncate_to_millis(tail.created_at):
            raise ChainOrderError(
                f"created_at {format_timestamp(created_at)} precedes chain tail "
                f"{format_timestamp(tail.created_at)} for asset {tail.asset_id}"
            )
        return created_at

    def append_event(
        self,
        asset_id: str,
        event_type: str,
        data: Optional[dict] = None,
        photo_urls: Optional[list[str]] = None,
        created_by: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> AssetEvent:
        """Append an event to an asset's chain and commit it.

        Reading the tail, hashing and committing happen inside the asset's
        exclusive section, with the asset row locked for the transaction.
        Pending work in the session is committed (or rolled back) with it.
        """
        started = time.perf_counter()
        with self.locks.hold(asset_id):
            try:
                self.get_asset(asset_id, for_update=True)
                tail = self._get_chain_tail(asset_id)
                record = mint_event(
                    tail.hash if tail else None,
                    asset_id,
                    event_type,
                    data=data,
                    photo_urls=photo_urls,
                    created_by=created_by,
                    created_at=self._resolve_created_at(tail, created_at),
                )
                event = AssetEvent(sequence=tail.sequence + 1 if tail else 0, **record)
                self.db.add(event)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                ledger_append_failures.labels(reason="conflict").inc()
                logger.error(
                    "Concurrent append detected on asset chain",
                    extra={"asset_id": asset_id, "event_type": event_type},
                )
                raise ChainConflictError(
                    f"Asset {asset_id} chain tail changed during append; retry the operation"
                ) from e
            except Exception as e:
                self.db.rollback()
                ledger_append_failures.labels(reason=type(e).__name__).inc()
                raise

        ledger_append_duration.observe(time.perf_counter() - started)
        ledger_events_appended.labels(event_type=event_type).inc()
        logger.info(
            "Appended asset event",
            extra={
                "asset_id": asset_id,
                "event_type": event_type,
                "sequence": event.sequence,
                "tenant_id": self.tenant_id,
            },
        )
        return event

    def get_asset_events(self, asset_id: str) -> list[AssetEvent]:
        """Get an asset's full chain in creation order."""
        self.get_asset(asset_id)
        return (
            self.db.query(AssetEvent)
            .filter(AssetEvent.asset_id == asset_id)
            .order_by(AssetEvent.created_at.asc(), AssetEvent.sequence.asc())
            .all()
        )

    def list_events(self, asset_id: str, limit: int, offset: int = 0) -> tuple[list[AssetEvent], int]:
        """Get one page of an asset's events, newest first, and the total count."""
        self.get_asset(asset_id)
        query = self.db.query(AssetEvent).filter(AssetEvent.asset_id == asset_id)
        total = query.count()
        events = (
            query.order_by(AssetEvent.created_at.desc(), AssetEvent.sequence.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return events, total

    def verify_chain(self, asset_id: str) -> ChainValidation:
        """Verify hash chain integrity for an asset."""
        validation = validate_hash_chain(self.get_asset_events(asset_id))
        chain_validations.labels(result="valid" if validation.is_valid else "broken").inc()
        if not validation.is_valid:
            logger.warning(
                "Asset chain failed validation",
                extra={
                    "asset_id": asset_id,
                    "tenant_id": self.tenant_id,
                    "first_broken_index": validation.first_broken_index,
                    "error_count": len(validation.issues),
                },
            )
        return validation
