"""Tests for batch validation and payload normalization."""

import pytest

from schola_api.settings import Settings
from schola_api.sheets.errors import ValidationError
from schola_api.sheets.kinds import AttendanceKind, MarksKind, get_kind


@pytest.fixture
def kind():
    return AttendanceKind(Settings(environment="test"))


@pytest.fixture
def marks_kind():
    return MarksKind(Settings(environment="test"))


class TestBatchShape:
    """Whole-batch checks, before any item is looked at."""

    @pytest.mark.parametrize("batch", [[], None, "s1", {"entity_id": "s1"}])
    def test_rejects_empty_or_non_list(self, kind, batch):
        with pytest.raises(ValidationError, match="non-empty list"):
            kind.validate_batch(batch)

    def test_rejects_oversized_batch(self):
        kind = AttendanceKind(Settings(environment="test", reconcile_max_batch_size=2))
        batch = [{"entity_id": f"s{i}", "status": "PRESENT"} for i in range(3)]
        with pytest.raises(ValidationError, match="Maximum 2 records"):
            kind.validate_batch(batch)

    def test_rejects_duplicate_entity(self, kind):
        batch = [
            {"entity_id": "s1", "status": "PRESENT"},
            {"entity_id": "s1", "status": "ABSENT"},
        ]
        with pytest.raises(ValidationError) as exc:
            kind.validate_batch(batch)
        assert exc.value.entity_id == "s1"

    @pytest.mark.parametrize("entity_id", [None, "", "   ", 42])
    def test_rejects_bad_entity_id(self, kind, entity_id):
        with pytest.raises(ValidationError) as exc:
            kind.validate_batch([{"entity_id": entity_id, "status": "PRESENT"}])
        assert exc.value.field == "entity_id"

    def test_fails_fast_on_first_bad_item(self, kind):
        batch = [
            {"entity_id": "s1", "status": "PRESENT"},
            {"entity_id": "s2", "status": "NAPPING"},
            {"entity_id": "s3", "status": "LATE"},
        ]
        with pytest.raises(ValidationError) as exc:
            kind.validate_batch(batch)
        assert exc.value.entity_id == "s2"
        assert exc.value.field == "status"


class TestAttendancePayload:
    """Conditional lateness field and comment rules."""

    def test_late_without_minutes_rejected(self, kind):
        with pytest.raises(ValidationError) as exc:
            kind.validate_batch([{"entity_id": "s1", "status": "LATE"}])
        assert exc.value.field == "minutes_late"
        assert "s1" in exc.value.message

    def test_minutes_on_non_late_rejected(self, kind):
        with pytest.raises(ValidationError, match="only allowed when status is LATE"):
            kind.validate_batch([{"entity_id": "s1", "status": "PRESENT", "minutes_late": 5}])

    @pytest.mark.parametrize("minutes", [-1, 601, 2.5, "10", True])
    def test_minutes_bounds(self, kind, minutes):
        with pytest.raises(ValidationError, match="between 0 and 600"):
            kind.validate_batch([{"entity_id": "s1", "status": "LATE", "minutes_late": minutes}])

    @pytest.mark.parametrize("minutes", [0, 600])
    def test_minutes_edges_accepted(self, kind, minutes):
        items = kind.validate_batch([{"entity_id": "s1", "status": "LATE", "minutes_late": minutes}])
        assert items[0]["minutes_late"] == minutes

    def test_comment_cap(self, kind):
        kind.validate_batch([{"entity_id": "s1", "status": "ABSENT", "comment": "x" * 250}])
        with pytest.raises(ValidationError, match="max 250"):
            kind.validate_batch([{"entity_id": "s1", "status": "ABSENT", "comment": "x" * 251}])

    def test_normalize_trims_comment_and_empties_to_none(self, kind):
        assert kind.normalize({"entity_id": "s1", "status": "ABSENT", "comment": "  sick  "}) == {
            "status": "ABSENT",
            "minutes_late": None,
            "comment": "sick",
        }
        assert kind.normalize({"entity_id": "s1", "status": "PRESENT", "comment": "   "})["comment"] is None

    def test_normalize_keeps_minutes_for_late(self, kind):
        payload = kind.normalize({"entity_id": "s1", "status": "LATE", "minutes_late": 12})
        assert payload == {"status": "LATE", "minutes_late": 12, "comment": None}


class TestMarksPayload:
    """Score parsing and the derived missing flag."""

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, None), ("", None), (0, 0.0), (100, 100.0), ("67.456", 67.46), (55.5, 55.5)],
    )
    def test_score_normalization(self, marks_kind, raw, expected):
        payload = marks_kind.normalize({"entity_id": "s1", "score": raw})
        assert payload["score"] == expected
        assert payload["is_missing"] is (expected is None)

    @pytest.mark.parametrize("raw", [-0.5, 100.01, "abc", True, float("nan"), [50]])
    def test_invalid_scores_rejected(self, marks_kind, raw):
        with pytest.raises(ValidationError) as exc:
            marks_kind.validate_batch([{"entity_id": "s1", "score": raw}])
        assert exc.value.field == "score"

    def test_is_missing_must_agree_with_score(self, marks_kind):
        with pytest.raises(ValidationError, match="is_missing"):
            marks_kind.validate_batch([{"entity_id": "s1", "score": 40, "is_missing": True}])
        with pytest.raises(ValidationError, match="is_missing"):
            marks_kind.validate_batch([{"entity_id": "s1", "score": None, "is_missing": False}])
        marks_kind.validate_batch([{"entity_id": "s1", "score": None, "is_missing": True}])


class TestScopes:
    def test_attendance_scope_defaults_year(self, kind):
        key, extras = kind.parse_scope({"class_id": " c1 ", "sheet_date": "2025-03-03"})
        assert key["class_id"] == "c1"
        assert str(key["sheet_date"]) == "2025-03-03"
        assert extras == {"year": 2025, "term": None}

    @pytest.mark.parametrize(
        "scope,field",
        [
            ({"sheet_date": "2025-03-03"}, "class_id"),
            ({"class_id": "c1", "sheet_date": "03/03/2025"}, "sheet_date"),
            ({"class_id": "c1", "sheet_date": "2025-02-30"}, "sheet_date"),
            ({"class_id": "c1", "sheet_date": "2025-03-03", "term": "TERM9"}, "term"),
            ({"class_id": "c1", "sheet_date": "2025-03-03", "year": 1999}, "year"),
        ],
    )
    def test_attendance_scope_errors(self, kind, scope, field):
        with pytest.raises(ValidationError) as exc:
            kind.parse_scope(scope)
        assert exc.value.field == field

    def test_marks_scope_requires_class(self, marks_kind):
        with pytest.raises(ValidationError) as exc:
            marks_kind.parse_scope({"exam_session_id": "mid-term", "subject_id": "math"})
        assert exc.value.field == "class_id"

    def test_unknown_kind(self):
        with pytest.raises(ValidationError, match="Unknown sheet kind"):
            get_kind("fees")
