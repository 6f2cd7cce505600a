"""Tests for tenant isolation enforcement."""

import pytest

from schola_api.models import AttendanceRecord, AttendanceSession, Student
from schola_api.sheets.errors import EntityNotFoundError, NotFoundError, ValidationError


@pytest.mark.parametrize(
    "operation",
    [
        lambda svc, tenant, sheet: svc.get_sheet(tenant, sheet),
        lambda svc, tenant, sheet: svc.reconcile(tenant, sheet, "intruder", [{"entity_id": "s1", "status": "ABSENT"}]),
        lambda svc, tenant, sheet: svc.submit(tenant, sheet, "intruder"),
        lambda svc, tenant, sheet: svc.unlock(tenant, sheet, "intruder"),
        lambda svc, tenant, sheet: svc.lock(tenant, sheet, "intruder"),
        lambda svc, tenant, sheet: svc.list_audit(tenant, sheet),
        lambda svc, tenant, sheet: svc.verify_audit(tenant, sheet),
    ],
    ids=["get", "reconcile", "submit", "unlock", "lock", "list_audit", "verify_audit"],
)
def test_foreign_sheet_is_not_found(db, attendance, school, other_school, open_session, audit_count, operation):
    """A valid sheet id under the wrong tenant looks exactly like a missing one."""
    with pytest.raises(NotFoundError) as exc:
        operation(attendance, other_school.id, open_session.id)

    assert str(open_session.id) in exc.value.message
    with pytest.raises(NotFoundError) as missing:
        operation(attendance, other_school.id, 987654)
    assert exc.value.message.replace(str(open_session.id), "#") == missing.value.message.replace("987654", "#")

    db.expire_all()
    assert attendance.get_sheet(school.id, open_session.id).status == "EDITABLE"
    assert audit_count(open_session.id) == 0


def test_same_scope_in_two_tenants(db, attendance, school, other_school, make_students, roster):
    """Scope keys are unique per tenant, not globally."""
    make_students(other_school, "c1", ["t1", "t2"])
    scope = {"class_id": "c1", "sheet_date": "2025-03-03"}

    mine = attendance.ensure_sheet(school.id, scope)
    theirs = attendance.ensure_sheet(other_school.id, scope)

    assert mine.sheet.id != theirs.sheet.id
    assert mine.seeded == 3
    assert theirs.seeded == 2
    owners = {
        r.entity_id: r.tenant_id
        for r in db.query(AttendanceRecord).filter(AttendanceRecord.sheet_id == theirs.sheet.id)
    }
    assert owners == {"t1": other_school.id, "t2": other_school.id}


@pytest.mark.parametrize("tenant_id", [None, 0, -3, True, "1"])
def test_tenant_id_is_required(attendance, tenant_id):
    with pytest.raises(ValidationError) as exc:
        attendance.ensure_sheet(tenant_id, {"class_id": "c1", "sheet_date": "2025-03-03"})
    assert exc.value.field == "tenant_id"


def record_rows(db, sheet_id):
    return sorted(
        (r.entity_id, r.status)
        for r in db.query(AttendanceRecord).filter(AttendanceRecord.sheet_id == sheet_id)
    )


@pytest.mark.parametrize("entity_id", ["t1", "ghost"], ids=["other-tenant-student", "unknown-student"])
def test_reconcile_rejects_entities_outside_directory(
    db, attendance, school, other_school, open_session, make_students, audit_count, entity_id
):
    make_students(other_school, "c1", ["t1"])
    before = record_rows(db, open_session.id)

    with pytest.raises(EntityNotFoundError) as exc:
        attendance.reconcile(
            school.id,
            open_session.id,
            "teacher-1",
            [{"entity_id": "s1", "status": "ABSENT"}, {"entity_id": entity_id, "status": "ABSENT"}],
        )

    assert isinstance(exc.value, NotFoundError)
    assert exc.value.context == {"entity_id": entity_id}
    db.expire_all()
    assert record_rows(db, open_session.id) == before
    assert audit_count(open_session.id) == 0


@pytest.mark.parametrize("entity_id", ["t1", "ghost"], ids=["other-tenant-student", "unknown-student"])
def test_ensure_rejects_explicit_entities_outside_directory(
    db, attendance, school, other_school, roster, make_students, entity_id
):
    make_students(other_school, "c1", ["t1"])

    with pytest.raises(EntityNotFoundError) as exc:
        attendance.ensure_sheet(
            school.id, {"class_id": "c1", "sheet_date": "2025-03-10"}, active_entity_ids=["s1", entity_id]
        )

    assert exc.value.entity_id == entity_id
    assert db.query(AttendanceSession).filter(AttendanceSession.tenant_id == school.id).count() == 0
    assert db.query(AttendanceRecord).count() == 0


def test_student_ids_are_per_tenant(db, attendance, school, other_school, roster, make_students):
    """Two schools may both have a student "s1"; each sheet only sees its own."""
    make_students(other_school, "c1", ["s1"])
    scope = {"class_id": "c1", "sheet_date": "2025-03-03"}

    theirs = attendance.ensure_sheet(other_school.id, scope)
    attendance.reconcile(other_school.id, theirs.sheet.id, "teacher-9", [{"entity_id": "s1", "status": "ABSENT"}])

    assert db.query(Student).filter(Student.id == "s1").count() == 2
    assert theirs.seeded == 1
    assert record_rows(db, theirs.sheet.id) == [("s1", "ABSENT")]
    flagged = attendance.summarize(school.id, "flagged", {"class_id": "c1"}, min_count=1)
    assert flagged == []
