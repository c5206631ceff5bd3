"""Base service class with tenant isolation guardrails."""

from typing import Optional

from sqlalchemy.orm import Query, Session


class BaseService:
    """Base service with tenant isolation enforcement."""

    def __init__(self, db: Session, tenant_id: Optional[int] = None):
        """Initialize service with tenant context."""
        self.db = db
        self.tenant_id = tenant_id

    def _scope_to_tenant(self, query: Query, model) -> Query:
        """Restrict a query to the service's tenant when one is set.

        Services without a tenant (CLI, worker audits) see every tenant.
        """
        if self.tenant_id is None:
            return query
        return query.filter(model.tenant_id == self.tenant_id)
