"""Database models - import all models here for Alembic discovery."""

from schola_api.models.attendance import AttendanceRecord, AttendanceSession
from schola_api.models.audit import SheetAuditEntry
from schola_api.models.enums import AttendanceStatus, AuditAction, SheetStatus, Term
from schola_api.models.marks import Mark, MarkSheet
from schola_api.models.roster import Student
from schola_api.models.tenant import APIKey, Tenant

__all__ = [
    "Tenant",
    "APIKey",
    "Student",
    "AttendanceSession",
    "AttendanceRecord",
    "MarkSheet",
    "Mark",
    "SheetAuditEntry",
    "SheetStatus",
    "AuditAction",
    "AttendanceStatus",
    "Term",
]
