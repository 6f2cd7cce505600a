"""Enumerations shared by sheet models."""

import enum


class SheetStatus(str, enum.Enum):
    """Approval state of a sheet."""

    EDITABLE = "EDITABLE"
    SUBMITTED = "SUBMITTED"
    LOCKED = "LOCKED"


class AuditAction(str, enum.Enum):
    """Actions recorded in the sheet audit trail."""

    CREATE_RECORD = "CREATE_RECORD"
    UPDATE_RECORD = "UPDATE_RECORD"
    SUBMIT_CONTAINER = "SUBMIT_CONTAINER"
    UNLOCK_CONTAINER = "UNLOCK_CONTAINER"
    LOCK_CONTAINER = "LOCK_CONTAINER"


class AttendanceStatus(str, enum.Enum):
    """Attendance mark for one student on one class day."""

    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    LATE = "LATE"
    EXCUSED = "EXCUSED"


class Term(str, enum.Enum):
    """School term."""

    TERM1 = "TERM1"
    TERM2 = "TERM2"
    TERM3 = "TERM3"
