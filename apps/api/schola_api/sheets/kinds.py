"""Record kinds: the per-sheet-type rules the engine is parameterized over.

A kind knows how to parse a sheet scope, validate and normalize one desired
record state, compare it with a persisted record, and classify records into
discriminant values for derived views. Everything else (diffing, batching,
auditing, lifecycle) is shared.
"""

import math
import re
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import case

from schola_api.models import AttendanceRecord, AttendanceSession, Mark, MarkSheet
from schola_api.models.enums import AttendanceStatus, Term
from schola_api.settings import Settings, get_settings
from schola_api.sheets.errors import IncompleteError, ValidationError
from schola_api.sheets.grades import grade_from_score

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: Any, field: str) -> date:
    """Parse a YYYY-MM-DD string (or pass a date through)."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE.match(value):
        raise ValidationError(f"{field} is required and must be a date (YYYY-MM-DD).", field=field)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {field} value.", field=field) from None


def _require_str(scope: Mapping, field: str) -> str:
    value = scope.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required and must be a non-empty string.", field=field)
    return value.strip()


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


class RecordKind:
    """Rules for one sheet type. Subclasses fill in the class attributes."""

    name = ""
    capability = ""
    sheet_model = None
    record_model = None
    scope_fields: tuple = ()
    extra_fields: tuple = ()
    payload_fields: tuple = ()
    discriminant_values: tuple = ()
    favorable = ""
    unfavorable = ""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    # -- scope -------------------------------------------------------------

    def parse_scope(self, scope: Mapping) -> tuple[dict, dict]:
        """Split a caller scope into (unique key columns, descriptive columns)."""
        raise NotImplementedError

    # -- payload -----------------------------------------------------------

    def validate_batch(self, batch: Any) -> list[dict]:
        """Fail fast on the first malformed item; returns the items as dicts."""
        if not isinstance(batch, (list, tuple)) or len(batch) == 0:
            raise ValidationError("records must be a non-empty list.")

        max_size = self.settings.reconcile_max_batch_size
        if len(batch) > max_size:
            raise ValidationError(f"Maximum {max_size} records per request allowed.")

        seen = set()
        for item in batch:
            if not isinstance(item, Mapping):
                raise ValidationError("Each record must be an object.")

            entity_id = item.get("entity_id")
            if not isinstance(entity_id, str) or not entity_id.strip():
                raise ValidationError(
                    "Each record must include entity_id (non-empty string).", field="entity_id"
                )
            if entity_id in seen:
                raise ValidationError(
                    f"Duplicate record for entity {entity_id}.", entity_id=entity_id, field="entity_id"
                )
            seen.add(entity_id)

            self.validate(item)

        return [dict(item) for item in batch]

    def validate(self, item: Mapping) -> None:
        raise NotImplementedError

    def normalize(self, item: Mapping) -> dict:
        """Canonical payload for a validated item."""
        raise NotImplementedError

    def default_payload(self) -> dict:
        """Payload of a record seeded when a sheet is opened."""
        raise NotImplementedError

    def snapshot(self, record) -> dict:
        return {field: getattr(record, field) for field in self.payload_fields}

    def describe(self, record) -> dict:
        """Display form of a record."""
        return {"id": record.id, "entity_id": record.entity_id, **self.snapshot(record)}

    def equals(self, record, payload: Mapping) -> bool:
        return all(getattr(record, field) == payload.get(field) for field in self.payload_fields)

    def _validate_comment(self, item: Mapping, entity_id: str) -> None:
        comment = item.get("comment")
        if comment is None:
            return
        if not isinstance(comment, str):
            raise ValidationError(
                f"comment must be a string ({entity_id}).", entity_id=entity_id, field="comment"
            )
        cap = self.settings.comment_max_length
        if len(comment) > cap:
            raise ValidationError(
                f"comment too long (max {cap} chars) ({entity_id}).",
                entity_id=entity_id,
                field="comment",
            )

    # -- derived views -----------------------------------------------------

    def discriminant_expression(self):
        """SQL expression yielding the discriminant value of a record row."""
        raise NotImplementedError

    def check_submittable(self, records: Iterable) -> None:
        """Kind-specific submit preconditions over the active entities' records."""
        return None


class AttendanceKind(RecordKind):
    """Daily class attendance."""

    name = "attendance"
    capability = "ATTENDANCE_WRITE"
    sheet_model = AttendanceSession
    record_model = AttendanceRecord
    scope_fields = ("class_id", "sheet_date")
    extra_fields = ("year", "term")
    payload_fields = ("status", "minutes_late", "comment")
    discriminant_values = tuple(s.value for s in AttendanceStatus)
    favorable = AttendanceStatus.PRESENT.value
    unfavorable = AttendanceStatus.ABSENT.value

    def parse_scope(self, scope: Mapping) -> tuple[dict, dict]:
        if not isinstance(scope, Mapping):
            raise ValidationError("scope must be an object.")
        class_id = _require_str(scope, "class_id")
        sheet_date = parse_date(scope.get("sheet_date"), "sheet_date")

        term = scope.get("term")
        if term is not None and term not in {t.value for t in Term}:
            raise ValidationError(
                f"Invalid term. Allowed: {', '.join(t.value for t in Term)}", field="term"
            )

        year = scope.get("year")
        if year is None:
            year = sheet_date.year
        if isinstance(year, bool) or not isinstance(year, int) or not 2000 <= year <= 2100:
            raise ValidationError(
                "Invalid year. Must be an integer between 2000 and 2100.", field="year"
            )

        return {"class_id": class_id, "sheet_date": sheet_date}, {"year": year, "term": term}

    def validate(self, item: Mapping) -> None:
        entity_id = item["entity_id"]
        status = item.get("status")
        if status not in self.discriminant_values:
            raise ValidationError(
                f"Invalid status for entity {entity_id}. Allowed: {', '.join(self.discriminant_values)}",
                entity_id=entity_id,
                field="status",
            )

        self._validate_comment(item, entity_id)

        minutes = item.get("minutes_late")
        if status == AttendanceStatus.LATE.value:
            if minutes is None:
                raise ValidationError(
                    f"minutes_late required when status is LATE ({entity_id}).",
                    entity_id=entity_id,
                    field="minutes_late",
                )
            cap = self.settings.late_minutes_max
            if isinstance(minutes, bool) or not isinstance(minutes, int) or not 0 <= minutes <= cap:
                raise ValidationError(
                    f"minutes_late must be an integer between 0 and {cap} ({entity_id}).",
                    entity_id=entity_id,
                    field="minutes_late",
                )
        elif minutes is not None:
            raise ValidationError(
                f"minutes_late is only allowed when status is LATE ({entity_id}).",
                entity_id=entity_id,
                field="minutes_late",
            )

    def normalize(self, item: Mapping) -> dict:
        status = item["status"]
        return {
            "status": status,
            "minutes_late": item.get("minutes_late") if status == AttendanceStatus.LATE.value else None,
            "comment": _clean_text(item.get("comment")),
        }

    def default_payload(self) -> dict:
        return {"status": AttendanceStatus.PRESENT.value, "minutes_late": None, "comment": None}

    def discriminant_expression(self):
        return AttendanceRecord.status


class MarksKind(RecordKind):
    """Exam scores for one subject."""

    name = "marks"
    capability = "EXAMS_WRITE"
    sheet_model = MarkSheet
    record_model = Mark
    scope_fields = ("exam_session_id", "subject_id")
    extra_fields = ("class_id", "sheet_date")
    payload_fields = ("score", "is_missing", "comment")
    discriminant_values = ("FILLED", "MISSING")
    favorable = "FILLED"
    unfavorable = "MISSING"

    def parse_scope(self, scope: Mapping) -> tuple[dict, dict]:
        if not isinstance(scope, Mapping):
            raise ValidationError("scope must be an object.")
        key = {
            "exam_session_id": _require_str(scope, "exam_session_id"),
            "subject_id": _require_str(scope, "subject_id"),
        }
        sheet_date = scope.get("sheet_date")
        extras = {
            "class_id": _require_str(scope, "class_id"),
            "sheet_date": parse_date(sheet_date, "sheet_date") if sheet_date is not None else None,
        }
        return key, extras

    def _parse_score(self, raw: Any, entity_id: str) -> Optional[float]:
        if raw is None or raw == "":
            return None

        low, high = self.settings.score_min, self.settings.score_max
        message = f"Invalid score for entity {entity_id}: must be {low:g}-{high:g} or empty."
        if isinstance(raw, bool):
            raise ValidationError(message, entity_id=entity_id, field="score")
        if isinstance(raw, str):
            try:
                value = float(raw.strip())
            except ValueError:
                raise ValidationError(message, entity_id=entity_id, field="score") from None
        elif isinstance(raw, (int, float)):
            value = float(raw)
        else:
            raise ValidationError(message, entity_id=entity_id, field="score")

        if math.isnan(value) or not low <= value <= high:
            raise ValidationError(message, entity_id=entity_id, field="score")
        return round(value, 2)

    def validate(self, item: Mapping) -> None:
        entity_id = item["entity_id"]
        score = self._parse_score(item.get("score"), entity_id)

        is_missing = item.get("is_missing")
        if is_missing is not None:
            if not isinstance(is_missing, bool):
                raise ValidationError(
                    f"is_missing must be a boolean ({entity_id}).", entity_id=entity_id, field="is_missing"
                )
            if is_missing != (score is None):
                raise ValidationError(
                    f"is_missing must be true exactly when score is empty ({entity_id}).",
                    entity_id=entity_id,
                    field="is_missing",
                )

        self._validate_comment(item, entity_id)

    def normalize(self, item: Mapping) -> dict:
        score = self._parse_score(item.get("score"), item["entity_id"])
        return {
            "score": score,
            "is_missing": score is None,
            "comment": _clean_text(item.get("comment")),
        }

    def default_payload(self) -> dict:
        return {"score": None, "is_missing": True, "comment": None}

    def describe(self, record) -> dict:
        data = super().describe(record)
        data["grade"] = grade_from_score(record.score)
        return data

    def discriminant_expression(self):
        return case((Mark.is_missing == True, "MISSING"), else_="FILLED")  # noqa: E712

    def check_submittable(self, records: Iterable) -> None:
        missing = [r.entity_id for r in records if r.is_missing]
        if missing:
            raise IncompleteError(
                f"Cannot submit: {len(missing)} active student(s) still have missing marks.",
                missing_entity_ids=missing,
            )


KINDS = {
    AttendanceKind.name: AttendanceKind,
    MarksKind.name: MarksKind,
}


def get_kind(name: str, settings: Optional[Settings] = None) -> RecordKind:
    """Instantiate a record kind by name."""
    try:
        return KINDS[name](settings)
    except KeyError:
        raise ValidationError(f"Unknown sheet kind '{name}'. Allowed: {', '.join(KINDS)}") from None
