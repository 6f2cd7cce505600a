"""Attendance session endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from schola_api.db.session import get_db
from schola_api.policy.entitlements import ATTENDANCE_WRITE
from schola_api.routes.common import (
    add_lifecycle_routes,
    get_actor_id,
    get_tenant_id,
    require_write,
    serialize_sheet,
)
from schola_api.sheets.service import SheetService

router = APIRouter(prefix="/v1/attendance", tags=["attendance"])

KIND = "attendance"


class EnsureSessionRequest(BaseModel):
    """Open (or reopen) the attendance session of a class for one day."""

    class_id: str = Field(..., description="Class identifier")
    date: str = Field(..., description="Session date (YYYY-MM-DD)")
    year: Optional[int] = Field(None, description="Academic year; defaults to the date's year")
    term: Optional[str] = Field(None, description="TERM1, TERM2 or TERM3")
    student_ids: Optional[list[str]] = Field(
        None, description="Active students to seed; defaults to the class roster"
    )


class AttendanceRecordIn(BaseModel):
    """Desired attendance state of one student. Values are checked by the sheet engine."""

    student_id: Any = None
    status: Any = None
    minutes_late: Any = None
    comment: Any = None


class BulkAttendanceRequest(BaseModel):
    records: Any = Field(..., description="Desired state per student")


def _batch(records: Any) -> Any:
    """Map transport field names onto engine items; anything malformed passes through for validation."""
    if not isinstance(records, list):
        return records
    items = []
    for raw in records:
        if not isinstance(raw, dict):
            items.append(raw)
            continue
        record = AttendanceRecordIn.model_validate(raw)
        items.append(
            {
                "entity_id": record.student_id,
                "status": record.status,
                "minutes_late": record.minutes_late,
                "comment": record.comment,
            }
        )
    return items


@router.post("/sessions", status_code=status.HTTP_200_OK)
def ensure_session(
    request_data: EnsureSessionRequest,
    tenant_id: int = Depends(require_write(ATTENDANCE_WRITE)),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Open the session and seed a PRESENT record for every active student without one."""
    service = SheetService(db, KIND)
    result = service.ensure_sheet(
        tenant_id,
        {
            "class_id": request_data.class_id,
            "sheet_date": request_data.date,
            "year": request_data.year,
            "term": request_data.term,
        },
        active_entity_ids=request_data.student_ids,
        actor_id=actor_id,
    )
    return {
        "created": result.created,
        "seeded": result.seeded,
        "session": serialize_sheet(service.kind, result.sheet, include_records=True),
    }


@router.get("/sessions")
def list_sessions(
    class_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    service = SheetService(db, KIND)
    sheets = service.list_sheets(tenant_id, class_id, date_from, date_to)
    return {"items": [serialize_sheet(service.kind, sheet) for sheet in sheets]}


@router.get("/sessions/{sheet_id}")
def get_session(
    sheet_id: int,
    tenant_id: int = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    service = SheetService(db, KIND)
    sheet = service.get_sheet(tenant_id, sheet_id)
    return serialize_sheet(service.kind, sheet, include_records=True)


@router.put("/sessions/{sheet_id}/records")
def bulk_update_records(
    sheet_id: int,
    request_data: BulkAttendanceRequest,
    tenant_id: int = Depends(require_write(ATTENDANCE_WRITE)),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Reconcile the session against the desired states; unchanged students are not written."""
    service = SheetService(db, KIND)
    result = service.reconcile(tenant_id, sheet_id, actor_id, _batch(request_data.records))
    return {
        "created": result.created,
        "updated": result.updated,
        "unchanged": result.unchanged,
        "session": serialize_sheet(service.kind, result.sheet, include_records=True),
    }


add_lifecycle_routes(router, KIND, ATTENDANCE_WRITE, "/sessions")
