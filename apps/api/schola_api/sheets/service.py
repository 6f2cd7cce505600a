"""Sheet service: the operations callers use to open, fill, close and read sheets.

Callers own tenant resolution and the entitlement check; every method here
takes an explicit ``tenant_id`` and treats sheets of other tenants as missing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from sqlalchemy.orm import Session

from schola_api.services.base import BaseService
from schola_api.settings import Settings, get_settings
from schola_api.sheets import lifecycle
from schola_api.sheets.audit import AuditTrail
from schola_api.sheets.errors import IncompleteError, ValidationError
from schola_api.sheets.kinds import RecordKind, get_kind, parse_date
from schola_api.sheets.reconcile import ReconcileResult, ReconciliationEngine
from schola_api.sheets.repository import SheetRepository
from schola_api.sheets.views import SheetViews
from schola_api.utils.metrics import lifecycle_transitions, record_writes

logger = logging.getLogger(__name__)

VIEW_ENTITY = "entity"
VIEW_SHEETS = "sheets"
VIEW_FLAGGED = "flagged"
VIEWS = (VIEW_ENTITY, VIEW_SHEETS, VIEW_FLAGGED)


@dataclass
class EnsureResult:
    sheet: Any
    created: bool
    seeded: int


def _require_actor(actor_id: Any) -> str:
    if not isinstance(actor_id, str) or not actor_id.strip():
        raise ValidationError("actor_id is required.", field="actor_id")
    return actor_id


def _optional_str(scope: Mapping, field: str) -> Optional[str]:
    value = scope.get(field)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string.", field=field)
    return value


class SheetService(BaseService):
    """Facade over repository, reconciliation, lifecycle, audit and views for one kind."""

    def __init__(self, db: Session, kind: Union[str, RecordKind], settings: Optional[Settings] = None):
        super().__init__(db)
        self.settings = settings or get_settings()
        self.kind = get_kind(kind, self.settings) if isinstance(kind, str) else kind
        self.repository = SheetRepository(db, self.kind)
        self.audit = AuditTrail(db, self.kind.name)
        self.engine = ReconciliationEngine(
            db, self.kind, repository=self.repository, audit=self.audit, settings=self.settings
        )
        self.views = SheetViews(db, self.kind, repository=self.repository)

    def _unit_of_work(self):
        return self.repository.unit_of_work(
            timeout_seconds=self.settings.reconcile_timeout_seconds,
            lock_timeout_seconds=self.settings.reconcile_lock_timeout_seconds,
        )

    # -- opening -----------------------------------------------------------

    def ensure_sheet(
        self,
        tenant_id: int,
        scope: Mapping,
        active_entity_ids: Optional[Iterable[str]] = None,
        actor_id: Optional[str] = None,
    ) -> EnsureResult:
        """Open (or reopen) the sheet for a scope and seed records for active entities lacking one.

        Safe to call repeatedly. When ``active_entity_ids`` is None the active
        students of the scope's class are used; explicit ids must all be in
        the tenant's student directory. A sheet that is not EDITABLE is
        returned untouched.
        """
        self._enforce_tenant(tenant_id)
        key, extras = self.kind.parse_scope(scope)
        if active_entity_ids is not None:
            active_entity_ids = set(active_entity_ids)
            if any(not isinstance(e, str) or not e.strip() for e in active_entity_ids):
                raise ValidationError("active_entity_ids must be non-empty strings.", field="active_entity_ids")

        with self._unit_of_work():
            if active_entity_ids is not None:
                self.repository.require_known_entities(tenant_id, sorted(active_entity_ids))
            sheet, created = self.repository.get_or_create_sheet(tenant_id, key, extras)
            seeded = 0
            if lifecycle.is_editable(sheet):
                if not created:
                    for field, value in extras.items():
                        if value is not None:
                            setattr(sheet, field, value)

                active = active_entity_ids
                if active is None:
                    active = self.repository.active_entity_ids(tenant_id, sheet.class_id)
                existing = self.repository.load_records(tenant_id, sheet.id, active)
                missing = sorted(active - set(existing))
                if missing:
                    self.repository.add_records(
                        tenant_id, sheet.id, {entity_id: self.kind.default_payload() for entity_id in missing}
                    )
                    seeded = len(missing)

        if seeded:
            record_writes.labels(kind=self.kind.name, action="seed").inc(seeded)
        logger.info(
            "Ensured sheet",
            extra={
                "kind": self.kind.name,
                "tenant_id": tenant_id,
                "sheet_id": sheet.id,
                "created": created,
                "seeded": seeded,
                "actor_id": actor_id,
            },
        )
        return EnsureResult(sheet=sheet, created=created, seeded=seeded)

    def get_sheet(self, tenant_id: int, sheet_id: int):
        return self.repository.get_sheet(tenant_id, sheet_id)

    def list_sheets(
        self,
        tenant_id: int,
        class_id: Optional[str] = None,
        date_from=None,
        date_to=None,
        exam_session_id: Optional[str] = None,
    ):
        date_from, date_to = self._parse_range(date_from, date_to)
        return self.repository.list_sheets(tenant_id, class_id, date_from, date_to, exam_session_id)

    # -- writing -----------------------------------------------------------

    def reconcile(self, tenant_id: int, sheet_id: int, actor_id: str, batch: Any) -> ReconcileResult:
        """Apply a batch of desired record states. Caller must have passed the entitlement gate."""
        self._enforce_tenant(tenant_id)
        return self.engine.reconcile(tenant_id, sheet_id, actor_id, batch)

    # -- lifecycle ---------------------------------------------------------

    def submit(self, tenant_id: int, sheet_id: int, actor_id: str):
        """EDITABLE -> SUBMITTED once every active entity has a record (and the kind agrees)."""

        def check(sheet):
            lifecycle.ensure_editable(sheet)
            active = self.repository.active_entity_ids(tenant_id, sheet.class_id)
            records = self.repository.load_records(tenant_id, sheet.id)
            missing = active - set(records)
            if missing:
                raise IncompleteError(
                    f"Sheet incomplete: {len(missing)} active student(s) have no record. "
                    "Reopen the sheet to resync before submitting.",
                    missing_entity_ids=missing,
                )
            self.kind.check_submittable(records[entity_id] for entity_id in sorted(active))

        return self._transition(
            "submit", tenant_id, sheet_id, actor_id, lifecycle.submit, check=check
        )

    def unlock(self, tenant_id: int, sheet_id: int, actor_id: str, reason: Optional[str] = None):
        """SUBMITTED or LOCKED -> EDITABLE. Role checks for who may unlock live in the caller."""
        if reason is not None:
            if not isinstance(reason, str):
                raise ValidationError("reason must be a string.", field="reason")
            reason = reason.strip() or None
            cap = self.settings.comment_max_length
            if reason and len(reason) > cap:
                raise ValidationError(f"reason too long (max {cap} chars).", field="reason")

        return self._transition(
            "unlock", tenant_id, sheet_id, actor_id, lambda sheet, now: lifecycle.unlock(sheet, now, reason)
        )

    def lock(self, tenant_id: int, sheet_id: int, actor_id: str):
        """Any status -> LOCKED."""
        return self._transition("lock", tenant_id, sheet_id, actor_id, lifecycle.lock)

    def _transition(self, action: str, tenant_id: int, sheet_id: int, actor_id: str, apply, check=None):
        actor_id = _require_actor(actor_id)
        self._enforce_tenant(tenant_id)

        with self._unit_of_work():
            sheet = self.repository.get_sheet(tenant_id, sheet_id, for_update=True)
            previous = sheet.status
            if check is not None:
                check(sheet)
            change = apply(sheet, datetime.utcnow())
            self.audit.append(tenant_id, sheet.id, actor_id, change)

        lifecycle_transitions.labels(kind=self.kind.name, action=action).inc()
        logger.info(
            "Sheet transition",
            extra={
                "kind": self.kind.name,
                "action": action,
                "tenant_id": tenant_id,
                "sheet_id": sheet_id,
                "actor_id": actor_id,
                "from_status": previous,
                "to_status": sheet.status,
            },
        )
        return sheet

    # -- reading -----------------------------------------------------------

    def _parse_range(self, date_from, date_to):
        date_from = parse_date(date_from, "date_from") if date_from is not None else None
        date_to = parse_date(date_to, "date_to") if date_to is not None else None
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to.", field="date_from")
        return date_from, date_to

    def summarize(
        self,
        tenant_id: int,
        view: str,
        scope: Mapping,
        date_from=None,
        date_to=None,
        min_count: Optional[int] = None,
    ):
        """Compute one derived view.

        ``entity`` needs ``scope["entity_id"]``; ``flagged`` needs
        ``scope["class_id"]``; ``sheets`` needs a ``class_id``, an
        ``exam_session_id`` (mark sheets), or both. ``min_count`` defaults to
        the configured flag threshold.
        """
        self._enforce_tenant(tenant_id)
        if view not in VIEWS:
            raise ValidationError(f"Unknown view '{view}'. Allowed: {', '.join(VIEWS)}", field="view")
        if not isinstance(scope, Mapping):
            raise ValidationError("scope must be an object.")
        date_from, date_to = self._parse_range(date_from, date_to)

        if view == VIEW_ENTITY:
            entity_id = scope.get("entity_id")
            if not isinstance(entity_id, str) or not entity_id.strip():
                raise ValidationError("entity_id is required.", field="entity_id")
            return self.views.entity_summary(tenant_id, entity_id, date_from, date_to)

        class_id = _optional_str(scope, "class_id")
        if view == VIEW_SHEETS:
            exam_session_id = _optional_str(scope, "exam_session_id")
            if class_id is None and exam_session_id is None:
                raise ValidationError("class_id or exam_session_id is required.", field="class_id")
            return self.views.sheet_rollup(tenant_id, class_id, date_from, date_to, exam_session_id)

        if class_id is None:
            raise ValidationError("class_id is required.", field="class_id")

        if min_count is None:
            min_count = self.settings.default_flag_threshold
        return self.views.flagged(tenant_id, class_id, min_count, date_from, date_to)

    def list_audit(self, tenant_id: int, sheet_id: int):
        sheet = self.repository.get_sheet(tenant_id, sheet_id)
        return self.audit.list_entries(tenant_id, sheet.id)

    def verify_audit(self, tenant_id: int, sheet_id: int) -> tuple[bool, Optional[str]]:
        """Recompute a sheet's audit hash chain."""
        sheet = self.repository.get_sheet(tenant_id, sheet_id)
        return self.audit.verify_chain(tenant_id, sheet.id)
