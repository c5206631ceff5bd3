"""Celery tasks for chain integrity audits."""

import logging
from typing import Optional

from celery import Task
from sqlalchemy.orm import Session

from servicevault_worker.celery_app import celery_app
from servicevault_worker.db import get_db

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Task with database session."""

    _db: Optional[Session] = None

    @property
    def db(self) -> Session:
        """Get database session."""
        if self._db is None:
            self._db = next(get_db())
        return self._db

    def after_return(self, *args, **kwargs):
        """Close database session after task."""
        if self._db:
            self._db.close()
            self._db = None


@celery_app.task(base=DatabaseTask, bind=True, name="servicevault_worker.tasks.audit_asset_chains")
def audit_asset_chains(self, tenant_id: Optional[int] = None, correlation_id: Optional[str] = None) -> dict:
    """Validate every asset chain for one tenant, or all tenants."""
    from servicevault_api.ledger.audit import audit_chains

    log_extra = {
        "task": "audit_asset_chains",
        "tenant_id": tenant_id,
        "correlation_id": correlation_id,
    }

    try:
        report = audit_chains(self.db, tenant_id=tenant_id)
    except Exception as e:
        logger.error(f"Error auditing asset chains: {e}", exc_info=True, extra=log_extra)
        raise

    if report.broken:
        logger.warning(
            f"{len(report.broken)} of {len(report.results)} asset chains failed validation",
            extra=log_extra,
        )
    else:
        logger.info(f"All {len(report.results)} asset chains valid", extra=log_extra)

    return report.to_dict()
