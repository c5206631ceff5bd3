"""Asset event ledger models."""

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, event, inspect
from sqlalchemy.orm import relationship

from servicevault_api.db.base import Base
from servicevault_api.ledger.errors import ImmutableEventError


class AssetEvent(Base):
    """Append-only asset lifecycle event with hash chaining."""

    __tablename__ = "asset_events"
    __table_args__ = (
        UniqueConstraint("asset_id", "sequence", name="uq_asset_events_asset_sequence"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    asset_id = Column(String(36), ForeignKey("assets.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # 0 for the first event of an asset
    type = Column(String(50), nullable=False, index=True)  # INSTALL, SERVICE, REPAIR, INSPECTION, ...
    data = Column(JSON, nullable=True)
    photo_urls = Column(JSON, nullable=True)
    created_by = Column(String(255), nullable=True)  # NULL for system-originated events
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    prev_hash = Column(String(64), nullable=True, index=True)  # NULL for first event
    hash = Column(String(64), nullable=False, unique=True, index=True)

    # Relationships
    asset = relationship("Asset", back_populates="events")


@event.listens_for(AssetEvent, "before_update")
def _reject_event_update(mapper, connection, target):
    changed = [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]
    if changed:
        raise ImmutableEventError(
            f"Asset event {target.id} is immutable; attempted to change {', '.join(sorted(changed))}. "
            "Record a compensating event instead."
        )


@event.listens_for(AssetEvent, "before_delete")
def _reject_event_delete(mapper, connection, target):
    raise ImmutableEventError(f"Asset event {target.id} is immutable and cannot be deleted.")
