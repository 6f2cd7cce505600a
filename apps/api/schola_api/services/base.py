"""Base service class with tenant isolation guardrails."""

from sqlalchemy.orm import Session

from schola_api.sheets.errors import ValidationError


class BaseService:
    """Base service with tenant isolation enforcement."""

    def __init__(self, db: Session):
        """Initialize service with a request-scoped session."""
        self.db = db

    def _enforce_tenant(self, tenant_id) -> int:
        """Enforce tenant_id is set and return it."""
        if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
            raise ValidationError(
                "tenant_id must be provided for tenant-isolated operations.", field="tenant_id"
            )
        return tenant_id

    def _tenant_query(self, model, tenant_id):
        """Start a query on a tenant-owned model, already filtered by tenant."""
        tenant_id = self._enforce_tenant(tenant_id)
        return self.db.query(model).filter(model.tenant_id == tenant_id)
