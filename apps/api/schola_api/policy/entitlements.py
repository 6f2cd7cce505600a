"""Subscription entitlement gate consulted before every sheet write."""

import logging

from sqlalchemy.orm import Session

from schola_api.models import Tenant

logger = logging.getLogger(__name__)

INACTIVE_SUBSCRIPTIONS = {"EXPIRED", "CANCELED"}

ATTENDANCE_WRITE = "ATTENDANCE_WRITE"
EXAMS_WRITE = "EXAMS_WRITE"


class EntitlementDenied(Exception):
    """Write refused by subscription policy."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class EntitlementGate:
    """Decides whether a tenant's subscription permits a write capability."""

    def __init__(self, db: Session):
        self.db = db

    def check_write(self, tenant_id: int, capability: str) -> None:
        """Raise EntitlementDenied unless the tenant may use ``capability``.

        An expired or canceled subscription blocks every write (402); otherwise
        the capability flag must be set in the tenant's entitlements (403).
        """
        tenant = self.db.query(Tenant).filter(Tenant.id == tenant_id).first()
        if tenant is None:
            raise EntitlementDenied("Tenant required for this action.", 403)

        if tenant.subscription_status in INACTIVE_SUBSCRIPTIONS:
            logger.warning(
                "Write blocked by subscription status",
                extra={"tenant_id": tenant_id, "capability": capability, "subscription_status": tenant.subscription_status},
            )
            raise EntitlementDenied(
                f"Subscription is {tenant.subscription_status}; writes are disabled.", 402
            )

        entitlements = tenant.entitlements_json or {}
        if not entitlements.get(capability):
            logger.warning(
                "Write blocked by missing entitlement",
                extra={"tenant_id": tenant_id, "capability": capability},
            )
            raise EntitlementDenied(f"Feature locked: missing entitlement {capability}", 403)

    def can_write(self, tenant_id: int, capability: str) -> bool:
        try:
            self.check_write(tenant_id, capability)
        except EntitlementDenied:
            return False
        return True
