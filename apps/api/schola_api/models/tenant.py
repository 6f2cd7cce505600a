"""Tenant (school) and API key models."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from schola_api.db.base import Base


class Tenant(Base):
    """School tenant. Every sheet, record and audit entry belongs to exactly one."""

    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    label = Column(String(255), nullable=False, unique=True, index=True)
    status = Column(String(50), default="active", nullable=False)  # active, suspended
    # TRIAL, ACTIVE, PAST_DUE, CANCELED, EXPIRED
    subscription_status = Column(String(20), default="TRIAL", nullable=False)
    entitlements_json = Column(JSON, nullable=True)  # {"ATTENDANCE_WRITE": true, ...}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    api_keys = relationship("APIKey", back_populates="tenant", cascade="all, delete-orphan")


class APIKey(Base):
    """API key model for tenant resolution."""

    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    prefix = Column(String(16), nullable=False, index=True)
    digest = Column(String(255), nullable=False, unique=True)
    label = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="api_keys")
