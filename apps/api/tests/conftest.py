"""Pytest configuration and fixtures for integration tests."""

import os

# Use test database URL from environment or default to SQLite in-memory.
# Must be set before schola_api builds its engine.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from schola_api.db.base import Base  # noqa: E402
from schola_api.db.session import SessionLocal, engine  # noqa: E402
from schola_api.models import SheetAuditEntry, Student, Tenant  # noqa: E402
from schola_api.settings import Settings  # noqa: E402
from schola_api.sheets.service import SheetService  # noqa: E402


@pytest.fixture(scope="function")
def db():
    """
    Create a test database session.

    The application engine is bound to TEST_DATABASE_URL, so sessions opened
    by middleware and routes see the same database as the test. For SQLite
    that is a single shared in-memory connection (StaticPool).
    """
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


def _make_tenant(db: Session, label: str, **overrides) -> Tenant:
    values = {
        "status": "active",
        "subscription_status": "ACTIVE",
        "entitlements_json": {"ATTENDANCE_WRITE": True, "EXAMS_WRITE": True},
    }
    values.update(overrides)
    tenant = Tenant(label=label, **values)
    db.add(tenant)
    db.commit()
    return tenant


def _make_students(db: Session, tenant: Tenant, class_id: str, student_ids, active: bool = True):
    students = []
    for index, student_id in enumerate(student_ids, start=1):
        student = Student(
            id=student_id,
            tenant_id=tenant.id,
            class_id=class_id,
            admission_no=f"ADM{index:03d}-{student_id}",
            first_name="Student",
            last_name=student_id,
            is_active=active,
        )
        db.add(student)
        students.append(student)
    db.commit()
    return students


def _audit_count(db: Session, sheet_id: int, kind: str = "attendance") -> int:
    return (
        db.query(SheetAuditEntry)
        .filter(SheetAuditEntry.sheet_kind == kind, SheetAuditEntry.sheet_id == sheet_id)
        .count()
    )


@pytest.fixture
def school(db: Session) -> Tenant:
    """A school with both write entitlements."""
    return _make_tenant(db, "school-a")


@pytest.fixture
def other_school(db: Session) -> Tenant:
    return _make_tenant(db, "school-b")


@pytest.fixture
def roster(db: Session, school: Tenant):
    """Three active students in class c1."""
    return _make_students(db, school, "c1", ["s1", "s2", "s3"])


@pytest.fixture
def engine_settings() -> Settings:
    """Small chunks so multi-chunk paths are exercised with tiny batches."""
    return Settings(environment="test", reconcile_chunk_size=1)


@pytest.fixture
def attendance(db: Session, engine_settings: Settings) -> SheetService:
    return SheetService(db, "attendance", settings=engine_settings)


@pytest.fixture
def marks(db: Session, engine_settings: Settings) -> SheetService:
    return SheetService(db, "marks", settings=engine_settings)


@pytest.fixture
def open_session(attendance: SheetService, school: Tenant, roster):
    """Attendance session for c1 on 2025-03-03, seeded with PRESENT for s1..s3."""
    result = attendance.ensure_sheet(school.id, {"class_id": "c1", "sheet_date": "2025-03-03"})
    return result.sheet


@pytest.fixture
def make_tenant(db: Session):
    """Factory for extra tenants: make_tenant(label, **column_overrides)."""
    return lambda label, **overrides: _make_tenant(db, label, **overrides)


@pytest.fixture
def make_students(db: Session):
    """Factory for roster entries: make_students(tenant, class_id, ids, active=True)."""
    return lambda tenant, class_id, ids, active=True: _make_students(db, tenant, class_id, ids, active)


@pytest.fixture
def audit_count(db: Session):
    """Number of audit entries on a sheet: audit_count(sheet_id, kind="attendance")."""
    return lambda sheet_id, kind="attendance": _audit_count(db, sheet_id, kind)
