"""Sheet audit trail model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint

from schola_api.db.base import Base


class SheetAuditEntry(Base):
    """Append-only, hash-chained record of one change to a sheet or its records."""

    __tablename__ = "sheet_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    sheet_kind = Column(String(32), nullable=False)  # attendance, marks
    sheet_id = Column(Integer, nullable=False)
    record_id = Column(Integer, nullable=True)  # NULL for sheet-level actions
    actor_id = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False, index=True)
    before_json = Column(JSON, nullable=True)
    after_json = Column(JSON, nullable=True)
    sequence = Column(Integer, nullable=False)
    entry_hash = Column(String(64), nullable=False, unique=True)
    previous_entry_hash = Column(String(64), nullable=True)  # NULL for first entry
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("sheet_kind", "sheet_id", "sequence", name="uq_sheet_audit_sequence"),
        Index("ix_sheet_audit_tenant_sheet", "tenant_id", "sheet_kind", "sheet_id"),
        Index("ix_sheet_audit_tenant_actor", "tenant_id", "actor_id"),
    )
