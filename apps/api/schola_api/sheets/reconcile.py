"""Diff-based bulk reconciliation of desired record states against a sheet.

For each desired item the engine creates the record (no persisted row),
updates it (some field differs) or leaves it alone (all fields equal). Every
create and update yields exactly one audit entry; no-ops yield none, so
resubmitting the same batch is free.
Every entity id must be a student of the calling tenant; an unknown id fails
the whole call before anything is written.

Items are applied in chunks of ``reconcile_chunk_size``: each chunk's inserts
and updates go out in a single flush, chunks run in input order, and the
whole call is one transaction holding the sheet row lock. A failure in any
chunk rolls back every chunk.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from schola_api.models import AuditAction
from schola_api.settings import Settings, get_settings
from schola_api.sheets.audit import AuditChange, AuditTrail
from schola_api.sheets.errors import SheetError, ValidationError
from schola_api.sheets.kinds import RecordKind
from schola_api.sheets.lifecycle import ensure_editable
from schola_api.sheets.repository import SheetRepository
from schola_api.utils.metrics import reconcile_duration, reconcile_requests, record_writes

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconcile call."""

    sheet: Any
    created: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> int:
        return self.created + self.updated


def chunked(items: list, size: int):
    """Yield consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ReconciliationEngine:
    """Applies a validated batch to one sheet with minimal writes and full audit coverage."""

    def __init__(
        self,
        db: Session,
        kind: RecordKind,
        repository: Optional[SheetRepository] = None,
        audit: Optional[AuditTrail] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.kind = kind
        self.settings = settings or get_settings()
        self.repository = repository or SheetRepository(db, kind)
        self.audit = audit or AuditTrail(db, kind.name)

    def reconcile(self, tenant_id: int, sheet_id: int, actor_id: str, batch: Any) -> ReconcileResult:
        """Validate the batch, then diff and apply it to the sheet in one transaction.

        Callers must have passed the entitlement gate for ``kind.capability``.
        """
        if not isinstance(actor_id, str) or not actor_id.strip():
            raise ValidationError("actor_id is required.", field="actor_id")
        items = self.kind.validate_batch(batch)

        started = time.perf_counter()
        try:
            result = self._apply(tenant_id, sheet_id, actor_id, items)
        except SheetError as e:
            reconcile_requests.labels(kind=self.kind.name, outcome=type(e).__name__).inc()
            raise
        finally:
            reconcile_duration.labels(kind=self.kind.name).observe(time.perf_counter() - started)

        reconcile_requests.labels(kind=self.kind.name, outcome="ok").inc()
        if result.created:
            record_writes.labels(kind=self.kind.name, action="create").inc(result.created)
        if result.updated:
            record_writes.labels(kind=self.kind.name, action="update").inc(result.updated)

        logger.info(
            "Reconciled sheet",
            extra={
                "kind": self.kind.name,
                "tenant_id": tenant_id,
                "sheet_id": sheet_id,
                "actor_id": actor_id,
                "created": result.created,
                "updated": result.updated,
                "unchanged": result.unchanged,
            },
        )
        return result

    def _apply(self, tenant_id: int, sheet_id: int, actor_id: str, items: list[dict]) -> ReconcileResult:
        with self.repository.unit_of_work(
            timeout_seconds=self.settings.reconcile_timeout_seconds,
            lock_timeout_seconds=self.settings.reconcile_lock_timeout_seconds,
        ) as deadline:
            sheet = self.repository.get_sheet(tenant_id, sheet_id, for_update=True)
            ensure_editable(sheet)

            entity_ids = [item["entity_id"] for item in items]
            self.repository.require_known_entities(tenant_id, entity_ids)
            existing = self.repository.load_records(tenant_id, sheet.id, entity_ids)

            changes: list[AuditChange] = []
            for chunk in chunked(items, self.settings.reconcile_chunk_size):
                deadline.check()
                changes.extend(self._apply_chunk(tenant_id, sheet, chunk, existing))

            if changes:
                # Bumps the sheet's version so a racing writer without the row lock fails
                sheet.updated_at = datetime.utcnow()
                self.audit.append_many(tenant_id, sheet.id, actor_id, changes)

        created = sum(1 for c in changes if c.action == AuditAction.CREATE_RECORD)
        updated = len(changes) - created
        return ReconcileResult(
            sheet=sheet,
            created=created,
            updated=updated,
            unchanged=len(items) - len(changes),
        )

    def _apply_chunk(self, tenant_id: int, sheet, chunk: list[dict], existing: dict) -> list[AuditChange]:
        """Stage one chunk's creates and updates and flush them together."""
        changes = []
        for item in chunk:
            entity_id = item["entity_id"]
            payload = self.kind.normalize(item)
            record = existing.get(entity_id)

            if record is None:
                record = self.repository.add_records(tenant_id, sheet.id, {entity_id: payload})[0]
                existing[entity_id] = record
                changes.append(
                    AuditChange(action=AuditAction.CREATE_RECORD, before=None, after=payload, record=record)
                )
                continue

            if self.kind.equals(record, payload):
                continue

            before = self.kind.snapshot(record)
            for field, value in payload.items():
                setattr(record, field, value)
            changes.append(
                AuditChange(action=AuditAction.UPDATE_RECORD, before=before, after=payload, record=record)
            )

        if changes:
            self.db.flush()
        return changes
