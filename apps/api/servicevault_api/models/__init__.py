"""Database models - import all models here for Alembic discovery."""

from servicevault_api.models.asset import Asset
from servicevault_api.models.ledger import AssetEvent
from servicevault_api.models.tenant import APIKey, Tenant

__all__ = [
    "Tenant",
    "APIKey",
    "Asset",
    "AssetEvent",
]
