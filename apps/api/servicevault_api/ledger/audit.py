"""Integrity audit across many asset chains."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from servicevault_api.ledger.locks import AssetLockProvider
from servicevault_api.ledger.service import EventLedgerService

logger = logging.getLogger(__name__)


@dataclass
class AssetAuditResult:
    """Validation outcome for one asset chain."""

    asset_id: str
    tenant_id: int
    event_count: int
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class AuditReport:
    """Validation outcomes for every audited asset."""

    results: list[AssetAuditResult] = field(default_factory=list)

    @property
    def broken(self) -> list[AssetAuditResult]:
        return [result for result in self.results if not result.is_valid]

    def to_dict(self) -> dict:
        return {
            "assets_checked": len(self.results),
            "broken_count": len(self.broken),
            "broken": [asdict(result) for result in self.broken],
        }


def audit_chains(
    db: Session,
    tenant_id: Optional[int] = None,
    locks: Optional[AssetLockProvider] = None,
) -> AuditReport:
    """Validate every asset chain for a tenant, or for all tenants.

    Broken chains are reported, not raised; the audit always covers every
    asset.
    """
    service = EventLedgerService(db, tenant_id=tenant_id, locks=locks)
    report = AuditReport()

    for asset in service.list_assets():
        validation = service.verify_chain(asset.id)
        report.results.append(
            AssetAuditResult(
                asset_id=asset.id,
                tenant_id=asset.tenant_id,
                event_count=validation.event_count,
                is_valid=validation.is_valid,
                errors=validation.errors,
            )
        )

    logger.info(
        "Chain integrity audit finished",
        extra={
            "tenant_id": tenant_id,
            "assets_checked": len(report.results),
            "broken_count": len(report.broken),
        },
    )
    return report
