"""Exam mark sheet and mark models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from schola_api.db.base import Base
from schola_api.models.enums import SheetStatus


class MarkSheet(Base):
    """Scores for one subject within one exam session."""

    __tablename__ = "mark_sheets"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    exam_session_id = Column(String(64), nullable=False)
    subject_id = Column(String(64), nullable=False)
    class_id = Column(String(64), nullable=False)
    sheet_date = Column(Date, nullable=True)  # exam date
    status = Column(String(20), default=SheetStatus.EDITABLE.value, nullable=False)
    unlock_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)

    # Relationships
    records = relationship(
        "Mark",
        back_populates="sheet",
        cascade="all, delete-orphan",
        order_by="Mark.entity_id",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "exam_session_id", "subject_id", name="uq_mark_sheet_scope"),
        Index("ix_mark_sheets_tenant_class", "tenant_id", "class_id"),
        Index("ix_mark_sheets_tenant_status", "tenant_id", "status"),
    )

    __mapper_args__ = {"version_id_col": version}


class Mark(Base):
    """One student's score within a mark sheet."""

    __tablename__ = "marks"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    sheet_id = Column(Integer, ForeignKey("mark_sheets.id"), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False)  # student id
    score = Column(Float, nullable=True)
    is_missing = Column(Boolean, default=True, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sheet = relationship("MarkSheet", back_populates="records")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sheet_id", "entity_id", name="uq_mark_entity"),
        Index("ix_marks_tenant_entity", "tenant_id", "entity_id"),
    )
