"""Exam mark sheet endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from schola_api.db.session import get_db
from schola_api.policy.entitlements import EXAMS_WRITE
from schola_api.routes.common import (
    add_lifecycle_routes,
    get_actor_id,
    get_tenant_id,
    require_write,
    serialize_sheet,
)
from schola_api.sheets.service import VIEW_SHEETS, SheetService

router = APIRouter(prefix="/v1/marks", tags=["marks"])

KIND = "marks"


class EnsureMarkSheetRequest(BaseModel):
    """Open (or reopen) the mark sheet of one subject in an exam session."""

    exam_session_id: str = Field(..., description="Exam session identifier")
    subject_id: str = Field(..., description="Subject identifier")
    class_id: str = Field(..., description="Class sitting the exam")
    exam_date: Optional[str] = Field(None, description="Exam date (YYYY-MM-DD)")
    student_ids: Optional[list[str]] = Field(
        None, description="Active students to seed; defaults to the class roster"
    )


class MarkIn(BaseModel):
    """Desired mark of one student. An empty or null score means the mark is missing."""

    student_id: Any = None
    score: Any = None
    is_missing: Any = None
    comment: Any = None


class BulkMarksRequest(BaseModel):
    marks: Any = Field(..., description="Desired mark per student")


def _batch(marks: Any) -> Any:
    if not isinstance(marks, list):
        return marks
    items = []
    for raw in marks:
        if not isinstance(raw, dict):
            items.append(raw)
            continue
        mark = MarkIn.model_validate(raw)
        items.append(
            {
                "entity_id": mark.student_id,
                "score": mark.score,
                "is_missing": mark.is_missing,
                "comment": mark.comment,
            }
        )
    return items


@router.post("/sheets")
def ensure_mark_sheet(
    request_data: EnsureMarkSheetRequest,
    tenant_id: int = Depends(require_write(EXAMS_WRITE)),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Open the mark sheet and seed a missing mark for every active student without one."""
    service = SheetService(db, KIND)
    result = service.ensure_sheet(
        tenant_id,
        {
            "exam_session_id": request_data.exam_session_id,
            "subject_id": request_data.subject_id,
            "class_id": request_data.class_id,
            "sheet_date": request_data.exam_date,
        },
        active_entity_ids=request_data.student_ids,
        actor_id=actor_id,
    )
    return {
        "created": result.created,
        "seeded": result.seeded,
        "sheet": serialize_sheet(service.kind, result.sheet, include_records=True),
    }


@router.get("/sheets")
def list_mark_sheets(
    exam_session_id: Optional[str] = None,
    class_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """List mark sheets; filtered by exam session, each sheet carries its missing-mark count."""
    service = SheetService(db, KIND)
    sheets = service.list_sheets(tenant_id, class_id, date_from, date_to, exam_session_id=exam_session_id)
    items = [serialize_sheet(service.kind, sheet) for sheet in sheets]

    if exam_session_id is not None:
        rollup = service.summarize(
            tenant_id,
            VIEW_SHEETS,
            {"exam_session_id": exam_session_id, "class_id": class_id},
            date_from,
            date_to,
        )
        missing = {row.sheet_id: row.counts["MISSING"] for row in rollup.rows}
        for item in items:
            item["missing_count"] = missing.get(item["id"], 0)

    return {"exam_session_id": exam_session_id, "items": items}


@router.get("/sheets/{sheet_id}")
def get_mark_sheet(
    sheet_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    service = SheetService(db, KIND)
    sheet = service.get_sheet(tenant_id, sheet_id)
    return serialize_sheet(service.kind, sheet, include_records=True)


@router.put("/sheets/{sheet_id}/marks")
def bulk_update_marks(
    sheet_id: int,
    request_data: BulkMarksRequest,
    tenant_id: int = Depends(require_write(EXAMS_WRITE)),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    service = SheetService(db, KIND)
    result = service.reconcile(tenant_id, sheet_id, actor_id, _batch(request_data.marks))
    return {
        "created": result.created,
        "updated": result.updated,
        "unchanged": result.unchanged,
        "sheet": serialize_sheet(service.kind, result.sheet, include_records=True),
    }


add_lifecycle_routes(router, KIND, EXAMS_WRITE, "/sheets")
