"""Asset models."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from servicevault_api.db.base import Base


class Asset(Base):
    """A physical asset whose lifecycle is recorded in its event chain."""

    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)  # PLUMBING, ELECTRICAL, HVAC, APPLIANCE, VEHICLE, etc.
    brand = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)
    serial = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)  # Installer notes from initial install
    installed_at = Column(DateTime, nullable=True)
    asset_type = Column(String(50), default="INFRASTRUCTURE", nullable=False)  # INFRASTRUCTURE, PERSONAL
    status = Column(String(50), default="ACTIVE", nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="assets")
    events = relationship(
        "AssetEvent",
        back_populates="asset",
        order_by="[AssetEvent.created_at, AssetEvent.sequence]",
    )
