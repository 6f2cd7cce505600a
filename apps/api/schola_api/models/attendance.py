"""Attendance session and record models."""

from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from schola_api.db.base import Base
from schola_api.models.enums import AttendanceStatus, SheetStatus


class AttendanceSession(Base):
    """One class's attendance for one day."""

    __tablename__ = "attendance_sessions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    class_id = Column(String(64), nullable=False)
    sheet_date = Column(Date, nullable=False)
    year = Column(Integer, nullable=True)
    term = Column(String(10), nullable=True)
    status = Column(String(20), default=SheetStatus.EDITABLE.value, nullable=False)
    unlock_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)

    # Relationships
    records = relationship(
        "AttendanceRecord",
        back_populates="sheet",
        cascade="all, delete-orphan",
        order_by="AttendanceRecord.entity_id",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "class_id", "sheet_date", name="uq_attendance_session_scope"),
        Index("ix_attendance_sessions_tenant_date", "tenant_id", "sheet_date"),
        Index("ix_attendance_sessions_tenant_status", "tenant_id", "status"),
    )

    __mapper_args__ = {"version_id_col": version}


class AttendanceRecord(Base):
    """One student's attendance mark within a session."""

    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    sheet_id = Column(Integer, ForeignKey("attendance_sessions.id"), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False)  # student id
    status = Column(String(20), default=AttendanceStatus.PRESENT.value, nullable=False)
    minutes_late = Column(Integer, nullable=True)  # only for LATE
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sheet = relationship("AttendanceSession", back_populates="records")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sheet_id", "entity_id", name="uq_attendance_record_entity"),
        Index("ix_attendance_records_tenant_entity", "tenant_id", "entity_id"),
        Index("ix_attendance_records_tenant_status", "tenant_id", "status"),
    )
