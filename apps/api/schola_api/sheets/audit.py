"""Sheet audit trail with per-sheet hash chaining."""

import hashlib
import json
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from schola_api.models import AuditAction, SheetAuditEntry


@dataclass
class AuditChange:
    """One change waiting to be written to the trail."""

    action: AuditAction
    after: Optional[dict]
    before: Optional[dict] = None
    record: Optional[object] = None  # record id is read at append time, after flush


def _jsonable(snapshot: Optional[dict]) -> Optional[dict]:
    """Snapshot with dates and datetimes rendered as ISO strings."""
    if snapshot is None:
        return None
    return {
        key: value.isoformat() if hasattr(value, "isoformat") else value
        for key, value in snapshot.items()
    }


class AuditTrail:
    """Tamper-evident, append-only change log.

    Entries are chained per sheet, not per tenant: the sheet row lock already
    serializes writers of one chain, so two sheets of the same tenant never
    contend on the trail.
    """

    def __init__(self, db: Session, sheet_kind: str):
        """Initialize audit trail for one sheet kind."""
        self.db = db
        self.sheet_kind = sheet_kind

    def _hash_entry(self, entry_data: dict) -> str:
        """Compute hash of entry data."""
        # Deterministic JSON representation
        entry_str = json.dumps(entry_data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(entry_str.encode()).hexdigest()

    def _entry_data(self, entry: SheetAuditEntry) -> dict:
        return {
            "tenant_id": entry.tenant_id,
            "sheet_kind": entry.sheet_kind,
            "sheet_id": entry.sheet_id,
            "record_id": entry.record_id,
            "actor_id": entry.actor_id,
            "action": entry.action,
            "before": entry.before_json,
            "after": entry.after_json,
            "sequence": entry.sequence,
            "previous_hash": entry.previous_entry_hash,
        }

    def _last_entry(self, tenant_id: int, sheet_id: int) -> Optional[SheetAuditEntry]:
        """Get the newest entry of a sheet's chain."""
        return (
            self.db.query(SheetAuditEntry)
            .filter(
                SheetAuditEntry.tenant_id == tenant_id,
                SheetAuditEntry.sheet_kind == self.sheet_kind,
                SheetAuditEntry.sheet_id == sheet_id,
            )
            .order_by(SheetAuditEntry.sequence.desc())
            .first()
        )

    def append_many(self, tenant_id: int, sheet_id: int, actor_id: str, changes: list[AuditChange]) -> list[SheetAuditEntry]:
        """Append changes in order as one batch. Caller must hold the sheet lock."""
        if not changes:
            return []

        last = self._last_entry(tenant_id, sheet_id)
        sequence = last.sequence if last else 0
        previous_hash = last.entry_hash if last else None

        entries = []
        for change in changes:
            sequence += 1
            action = change.action.value if isinstance(change.action, AuditAction) else change.action
            entry = SheetAuditEntry(
                tenant_id=tenant_id,
                sheet_kind=self.sheet_kind,
                sheet_id=sheet_id,
                record_id=change.record.id if change.record is not None else None,
                actor_id=actor_id,
                action=action,
                before_json=_jsonable(change.before),
                after_json=_jsonable(change.after),
                sequence=sequence,
                previous_entry_hash=previous_hash,
            )
            entry.entry_hash = self._hash_entry(self._entry_data(entry))
            previous_hash = entry.entry_hash
            entries.append(entry)

        self.db.add_all(entries)
        self.db.flush()
        return entries

    def append(self, tenant_id: int, sheet_id: int, actor_id: str, change: AuditChange) -> SheetAuditEntry:
        """Append a single change."""
        return self.append_many(tenant_id, sheet_id, actor_id, [change])[0]

    def list_entries(self, tenant_id: int, sheet_id: int) -> list[SheetAuditEntry]:
        """A sheet's entries in chain order."""
        return (
            self.db.query(SheetAuditEntry)
            .filter(
                SheetAuditEntry.tenant_id == tenant_id,
                SheetAuditEntry.sheet_kind == self.sheet_kind,
                SheetAuditEntry.sheet_id == sheet_id,
            )
            .order_by(SheetAuditEntry.sequence.asc())
            .all()
        )

    def verify_chain(self, tenant_id: int, sheet_id: int) -> tuple[bool, Optional[str]]:
        """Verify hash chain integrity for a sheet."""
        previous_hash = None
        expected_sequence = 1
        for entry in self.list_entries(tenant_id, sheet_id):
            if entry.sequence != expected_sequence:
                return False, f"Gap in chain: expected sequence {expected_sequence}, found {entry.sequence}"

            if entry.previous_entry_hash != previous_hash:
                return False, f"Entry {entry.sequence} does not link to its predecessor"

            if self._hash_entry(self._entry_data(entry)) != entry.entry_hash:
                return False, f"Entry {entry.sequence} content does not match its hash"

            previous_hash = entry.entry_hash
            expected_sequence += 1

        return True, None
