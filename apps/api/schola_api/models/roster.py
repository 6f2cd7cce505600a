"""Student directory read by the sheet engine."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from schola_api.db.base import Base


class Student(Base):
    """A student enrolled in a class. Only active students are expected on a sheet."""

    __tablename__ = "students"

    # Student ids are unique within a tenant only
    tenant_id = Column(Integer, ForeignKey("tenants.id"), primary_key=True, index=True)
    id = Column(String(64), primary_key=True)
    class_id = Column(String(64), nullable=True, index=True)
    admission_no = Column(String(64), nullable=False)
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_students_tenant_class_active", "tenant_id", "class_id", "is_active"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
