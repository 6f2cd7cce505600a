"""Tests for diff-based bulk reconciliation."""

import itertools
from unittest.mock import patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from schola_api.models import AttendanceRecord, SheetAuditEntry
from schola_api.sheets.errors import (
    ConcurrentModificationError,
    NotFoundError,
    PersistenceError,
    TransactionTimeoutError,
    ValidationError,
)
from schola_api.sheets.reconcile import chunked


def record_state(db, sheet_id):
    db.expire_all()
    records = db.query(AttendanceRecord).filter(AttendanceRecord.sheet_id == sheet_id).all()
    return sorted((r.entity_id, r.status, r.minutes_late, r.comment) for r in records)


def test_single_absence_scenario(db, attendance, school, open_session, audit_count):
    """Marking one of three present students absent writes exactly one update."""
    result = attendance.reconcile(
        school.id,
        open_session.id,
        "teacher-1",
        [{"entity_id": "s2", "status": "ABSENT", "comment": "Sick"}],
    )

    assert (result.created, result.updated, result.unchanged) == (0, 1, 0)
    assert audit_count(open_session.id) == 1
    entry = db.query(SheetAuditEntry).filter(SheetAuditEntry.sheet_id == open_session.id).one()
    assert entry.action == "UPDATE_RECORD"
    assert entry.before_json == {"status": "PRESENT", "minutes_late": None, "comment": None}
    assert entry.after_json == {"status": "ABSENT", "minutes_late": None, "comment": "Sick"}
    assert entry.record_id is not None

    assert record_state(db, open_session.id) == [
        ("s1", "PRESENT", None, None),
        ("s2", "ABSENT", None, "Sick"),
        ("s3", "PRESENT", None, None),
    ]

    rollup = attendance.summarize(school.id, "sheets", {"class_id": "c1"})
    row = rollup.rows[0]
    assert row.counts["PRESENT"] == 2
    assert row.counts["ABSENT"] == 1
    assert row.rate_pct == 67


def test_reconcile_is_idempotent(db, attendance, school, open_session, audit_count):
    batch = [
        {"entity_id": "s1", "status": "LATE", "minutes_late": 15},
        {"entity_id": "s2", "status": "ABSENT", "comment": "  "},
    ]
    first = attendance.reconcile(school.id, open_session.id, "teacher-1", batch)
    state = record_state(db, open_session.id)
    version = attendance.get_sheet(school.id, open_session.id).version

    second = attendance.reconcile(school.id, open_session.id, "teacher-1", batch)

    assert first.changed == 2
    assert second.changed == 0
    assert second.unchanged == 2
    assert audit_count(open_session.id) == 2
    assert record_state(db, open_session.id) == state
    assert attendance.get_sheet(school.id, open_session.id).version == version


def test_normalized_equal_payload_is_noop(db, attendance, school, open_session, audit_count):
    """A comment of only whitespace equals a null comment after normalization."""
    result = attendance.reconcile(
        school.id, open_session.id, "teacher-1", [{"entity_id": "s1", "status": "PRESENT", "comment": "   "}]
    )
    assert result.changed == 0
    assert audit_count(open_session.id) == 0


def test_mixed_batch_across_chunks(db, attendance, school, open_session, make_students):
    """Creates, updates and no-ops in one call, audited in input order."""
    make_students(school, "c1", ["s4"])
    result = attendance.reconcile(
        school.id,
        open_session.id,
        "teacher-1",
        [
            {"entity_id": "s1", "status": "PRESENT"},
            {"entity_id": "s2", "status": "EXCUSED"},
            {"entity_id": "s4", "status": "LATE", "minutes_late": 10},
        ],
    )

    assert (result.created, result.updated, result.unchanged) == (1, 1, 1)
    entries = attendance.list_audit(school.id, open_session.id)
    assert [(e.sequence, e.action) for e in entries] == [(1, "UPDATE_RECORD"), (2, "CREATE_RECORD")]
    assert entries[1].before_json is None
    assert entries[1].after_json["minutes_late"] == 10
    assert ("s4", "LATE", 10, None) in record_state(db, open_session.id)


def test_late_to_present_clears_minutes(db, attendance, school, open_session):
    attendance.reconcile(
        school.id, open_session.id, "teacher-1", [{"entity_id": "s1", "status": "LATE", "minutes_late": 7}]
    )
    attendance.reconcile(school.id, open_session.id, "teacher-1", [{"entity_id": "s1", "status": "PRESENT"}])

    assert ("s1", "PRESENT", None, None) in record_state(db, open_session.id)


def test_invalid_batch_writes_nothing(db, attendance, school, open_session, audit_count):
    before = record_state(db, open_session.id)
    with pytest.raises(ValidationError):
        attendance.reconcile(
            school.id,
            open_session.id,
            "teacher-1",
            [{"entity_id": "s1", "status": "ABSENT"}, {"entity_id": "s2", "status": "LATE"}],
        )
    assert record_state(db, open_session.id) == before
    assert audit_count(open_session.id) == 0


def test_failure_in_second_chunk_rolls_back_everything(db, attendance, school, open_session, audit_count):
    """Chunk 1 is flushed, chunk 2 fails: nothing from either chunk survives."""
    before = record_state(db, open_session.id)
    real_flush = db.flush
    calls = {"count": 0}

    def flaky_flush(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 2:
            raise OperationalError("UPDATE attendance_records", {}, Exception("disk I/O error"))
        return real_flush(*args, **kwargs)

    batch = [
        {"entity_id": "s1", "status": "ABSENT"},
        {"entity_id": "s2", "status": "ABSENT"},
        {"entity_id": "s3", "status": "LATE", "minutes_late": 5},
    ]
    with patch.object(db, "flush", side_effect=flaky_flush):
        with pytest.raises(PersistenceError) as exc:
            attendance.reconcile(school.id, open_session.id, "teacher-1", batch)

    assert calls["count"] == 2
    assert not isinstance(exc.value, TransactionTimeoutError)
    assert exc.value.retryable is False
    assert record_state(db, open_session.id) == before
    assert audit_count(open_session.id) == 0


def test_deadline_exceeded_rolls_back(db, attendance, school, open_session, audit_count):
    before = record_state(db, open_session.id)

    with patch("schola_api.sheets.repository._clock", side_effect=itertools.count(0, 100)):
        with pytest.raises(TransactionTimeoutError) as exc:
            attendance.reconcile(
                school.id, open_session.id, "teacher-1", [{"entity_id": "s1", "status": "ABSENT"}]
            )

    assert isinstance(exc.value, TimeoutError)
    assert not isinstance(exc.value, PersistenceError)
    assert exc.value.status_code == 504
    assert record_state(db, open_session.id) == before
    assert audit_count(open_session.id) == 0


def test_concurrent_version_bump_is_detected(db, attendance, school, open_session, audit_count):
    """Another writer bumping the sheet version mid-call surfaces a retryable conflict."""
    before = record_state(db, open_session.id)
    real_apply_chunk = attendance.engine._apply_chunk

    def racing_apply_chunk(tenant_id, sheet, chunk, existing):
        db.execute(
            text("UPDATE attendance_sessions SET version = version + 1 WHERE id = :id"),
            {"id": sheet.id},
        )
        return real_apply_chunk(tenant_id, sheet, chunk, existing)

    with patch.object(attendance.engine, "_apply_chunk", side_effect=racing_apply_chunk):
        with pytest.raises(ConcurrentModificationError) as exc:
            attendance.reconcile(
                school.id, open_session.id, "teacher-1", [{"entity_id": "s1", "status": "ABSENT"}]
            )

    assert exc.value.retryable is True
    assert exc.value.status_code == 409
    assert record_state(db, open_session.id) == before
    assert audit_count(open_session.id) == 0


def test_unknown_sheet(attendance, school, roster):
    with pytest.raises(NotFoundError):
        attendance.reconcile(school.id, 9999, "teacher-1", [{"entity_id": "s1", "status": "ABSENT"}])


def test_actor_required(attendance, school, open_session):
    with pytest.raises(ValidationError) as exc:
        attendance.reconcile(school.id, open_session.id, " ", [{"entity_id": "s1", "status": "ABSENT"}])
    assert exc.value.field == "actor_id"


def test_chunked_preserves_order():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
