"""Read-only aggregates over sheet records, recomputed on every call."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from schola_api.models import Student
from schola_api.sheets.errors import ValidationError
from schola_api.sheets.kinds import RecordKind
from schola_api.sheets.repository import SheetRepository


def rate_pct(part: int, total: int) -> int:
    """part/total as a whole percent, rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    return (part * 200 + total) // (2 * total)


@dataclass
class EntitySummary:
    entity_id: str
    counts: dict
    total: int
    rate_pct: int


@dataclass
class SheetRollupRow:
    sheet_id: int
    sheet_date: Optional[date]
    status: str
    counts: dict
    total: int
    rate_pct: int


@dataclass
class SheetRollup:
    class_id: Optional[str]
    rows: list = field(default_factory=list)
    exam_session_id: Optional[str] = None


@dataclass
class FlaggedEntity:
    entity_id: str
    admission_no: str
    name: str
    count: int


class SheetViews:
    """Per-entity summary, per-sheet rollup and threshold-flagged list for one kind."""

    def __init__(self, db: Session, kind: RecordKind, repository: Optional[SheetRepository] = None):
        self.db = db
        self.kind = kind
        self.repository = repository or SheetRepository(db, kind)

    def _empty_counts(self) -> dict:
        return {value: 0 for value in self.kind.discriminant_values}

    def _record_query(self, tenant_id: int, *columns, date_from=None, date_to=None):
        """Records joined to their sheets, tenant-scoped on both sides and range-filtered."""
        sheet, record = self.kind.sheet_model, self.kind.record_model
        query = (
            self.db.query(*columns)
            .select_from(record)
            .join(sheet, sheet.id == record.sheet_id)
            .filter(record.tenant_id == tenant_id, sheet.tenant_id == tenant_id)
        )
        if date_from is not None:
            query = query.filter(sheet.sheet_date >= date_from)
        if date_to is not None:
            query = query.filter(sheet.sheet_date <= date_to)
        return query

    def entity_summary(
        self, tenant_id: int, entity_id: str, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> EntitySummary:
        """Counts per discriminant value for one entity over a date range."""
        record = self.kind.record_model
        value = self.kind.discriminant_expression().label("value")
        rows = (
            self._record_query(tenant_id, value, func.count(record.id), date_from=date_from, date_to=date_to)
            .filter(record.entity_id == entity_id)
            .group_by(value)
            .all()
        )

        counts = self._empty_counts()
        for discriminant, count in rows:
            counts[discriminant] = count
        total = sum(counts.values())
        return EntitySummary(
            entity_id=entity_id,
            counts=counts,
            total=total,
            rate_pct=rate_pct(counts[self.kind.favorable], total),
        )

    def sheet_rollup(
        self,
        tenant_id: int,
        class_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        exam_session_id: Optional[str] = None,
    ) -> SheetRollup:
        """One row per sheet of a class (or exam session) in range, ordered by sheet date."""
        record = self.kind.record_model
        sheets = self.repository.list_sheets(tenant_id, class_id, date_from, date_to, exam_session_id)
        rollup = SheetRollup(class_id=class_id, exam_session_id=exam_session_id)
        if not sheets:
            return rollup

        value = self.kind.discriminant_expression().label("value")
        rows = (
            self._record_query(tenant_id, record.sheet_id, value, func.count(record.id))
            .filter(record.sheet_id.in_([s.id for s in sheets]))
            .group_by(record.sheet_id, value)
            .all()
        )

        counts_by_sheet = {s.id: self._empty_counts() for s in sheets}
        for sheet_id, discriminant, count in rows:
            counts_by_sheet[sheet_id][discriminant] = count

        for s in sheets:
            counts = counts_by_sheet[s.id]
            total = sum(counts.values())
            rollup.rows.append(
                SheetRollupRow(
                    sheet_id=s.id,
                    sheet_date=s.sheet_date,
                    status=s.status,
                    counts=counts,
                    total=total,
                    rate_pct=rate_pct(counts[self.kind.favorable], total),
                )
            )
        return rollup

    def flagged(
        self,
        tenant_id: int,
        class_id: str,
        min_count: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[FlaggedEntity]:
        """Active students of a class whose unfavorable count reaches ``min_count``, highest first."""
        if isinstance(min_count, bool) or not isinstance(min_count, int) or min_count < 1:
            raise ValidationError("min_count must be a positive integer.", field="min_count")

        record = self.kind.record_model
        flag_count = func.count(record.id).label("flag_count")
        rows = (
            self._record_query(
                tenant_id,
                Student.id,
                Student.admission_no,
                Student.first_name,
                Student.last_name,
                flag_count,
                date_from=date_from,
                date_to=date_to,
            )
            .join(Student, and_(Student.tenant_id == record.tenant_id, Student.id == record.entity_id))
            .filter(
                Student.tenant_id == tenant_id,
                Student.class_id == class_id,
                Student.is_active == True,  # noqa: E712
                self.kind.discriminant_expression() == self.kind.unfavorable,
            )
            .group_by(Student.id, Student.admission_no, Student.first_name, Student.last_name)
            .having(func.count(record.id) >= min_count)
            .all()
        )

        flagged = [
            FlaggedEntity(
                entity_id=row.id,
                admission_no=row.admission_no,
                name=f"{row.first_name} {row.last_name}",
                count=row.flag_count,
            )
            for row in rows
        ]
        flagged.sort(key=lambda f: (-f.count, f.entity_id))
        return flagged
