"""Sheet lifecycle: EDITABLE -> SUBMITTED -> LOCKED, with an audited unlock back to EDITABLE.

The transition functions here are pure: they check the current status, move
the sheet, and return the audit change describing the move. Loading, locking
and persisting belong to the caller.
"""

from datetime import datetime
from typing import Optional

from schola_api.models import AuditAction, SheetStatus
from schola_api.sheets.audit import AuditChange
from schola_api.sheets.errors import InvalidTransitionError, NotEditableError

SUBMITTABLE = {SheetStatus.EDITABLE.value}
UNLOCKABLE = {SheetStatus.SUBMITTED.value, SheetStatus.LOCKED.value}


def is_editable(sheet) -> bool:
    return sheet.status == SheetStatus.EDITABLE.value


def ensure_editable(sheet) -> None:
    """Mutation guard for records of a sheet."""
    if not is_editable(sheet):
        raise NotEditableError(sheet.status)


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def submit(sheet, now: datetime) -> AuditChange:
    """EDITABLE -> SUBMITTED. Completeness is checked by the caller first."""
    if sheet.status not in SUBMITTABLE:
        raise NotEditableError(sheet.status)

    before = {"status": sheet.status}
    sheet.status = SheetStatus.SUBMITTED.value
    sheet.submitted_at = now
    return AuditChange(
        action=AuditAction.SUBMIT_CONTAINER,
        before=before,
        after={"status": sheet.status, "submitted_at": _timestamp(now)},
    )


def unlock(sheet, now: datetime, reason: Optional[str] = None) -> AuditChange:
    """SUBMITTED or LOCKED -> EDITABLE. Who may call this is decided upstream."""
    if sheet.status not in UNLOCKABLE:
        raise InvalidTransitionError("unlock", sheet.status)

    before = {"status": sheet.status, "locked_at": _timestamp(sheet.locked_at)}
    sheet.status = SheetStatus.EDITABLE.value
    sheet.locked_at = None
    sheet.unlock_reason = reason
    after = {"status": sheet.status, "unlocked_at": _timestamp(now)}
    if reason:
        after["reason"] = reason
    return AuditChange(action=AuditAction.UNLOCK_CONTAINER, before=before, after=after)


def lock(sheet, now: datetime) -> AuditChange:
    """Any status -> LOCKED. Administrative finalization, including force-lock from EDITABLE."""
    before = {"status": sheet.status}
    sheet.status = SheetStatus.LOCKED.value
    sheet.locked_at = now
    return AuditChange(
        action=AuditAction.LOCK_CONTAINER,
        before=before,
        after={"status": sheet.status, "locked_at": _timestamp(now)},
    )
