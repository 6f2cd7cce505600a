"""Shared dependencies, serializers and lifecycle/view endpoints for sheet routers."""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from schola_api.db.session import get_db
from schola_api.policy.entitlements import EntitlementDenied, EntitlementGate
from schola_api.sheets.kinds import RecordKind
from schola_api.sheets.service import VIEW_ENTITY, VIEW_FLAGGED, VIEW_SHEETS, SheetService


class UnlockRequest(BaseModel):
    """Unlock request model."""

    reason: Optional[str] = Field(None, description="Why the sheet is being reopened")


def get_tenant_id(request: Request) -> int:
    """Tenant resolved by the auth middleware."""
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Tenant not resolved.")
    return tenant_id


def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    """Acting staff member, recorded on every audit entry."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing actor. Provide x-actor-id header.",
        )
    return x_actor_id.strip()


def require_write(capability: str):
    """Dependency factory: tenant id, once the entitlement gate allows ``capability``."""

    def dependency(request: Request, db: Session = Depends(get_db)) -> int:
        tenant_id = get_tenant_id(request)
        try:
            EntitlementGate(db).check_write(tenant_id, capability)
        except EntitlementDenied as e:
            raise HTTPException(status_code=e.status_code, detail=e.message) from e
        return tenant_id

    return dependency


def serialize_sheet(kind: RecordKind, sheet, include_records: bool = False) -> dict:
    data = {"id": sheet.id, "kind": kind.name}
    for field in kind.scope_fields + kind.extra_fields:
        data[field] = getattr(sheet, field)
    data.update(
        {
            "status": sheet.status,
            "version": sheet.version,
            "unlock_reason": sheet.unlock_reason,
            "created_at": sheet.created_at,
            "updated_at": sheet.updated_at,
            "submitted_at": sheet.submitted_at,
            "locked_at": sheet.locked_at,
        }
    )
    if include_records:
        data["records"] = [kind.describe(record) for record in sheet.records]
    return data


def serialize_audit_entry(entry) -> dict:
    return {
        "sequence": entry.sequence,
        "action": entry.action,
        "record_id": entry.record_id,
        "actor_id": entry.actor_id,
        "before": entry.before_json,
        "after": entry.after_json,
        "entry_hash": entry.entry_hash,
        "previous_entry_hash": entry.previous_entry_hash,
        "created_at": entry.created_at,
    }


def add_lifecycle_routes(router: APIRouter, kind_name: str, capability: str, path: str):
    """Register submit/unlock/lock, audit and derived-view endpoints on a sheet router."""

    @router.post(f"{path}/{{sheet_id}}/submit")
    def submit_sheet(
        sheet_id: int,
        tenant_id: int = Depends(require_write(capability)),
        actor_id: str = Depends(get_actor_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        sheet = service.submit(tenant_id, sheet_id, actor_id)
        return serialize_sheet(service.kind, sheet)

    @router.post(f"{path}/{{sheet_id}}/unlock")
    def unlock_sheet(
        sheet_id: int,
        payload: Optional[UnlockRequest] = None,
        tenant_id: int = Depends(require_write(capability)),
        actor_id: str = Depends(get_actor_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        reason = payload.reason if payload else None
        sheet = service.unlock(tenant_id, sheet_id, actor_id, reason=reason)
        return serialize_sheet(service.kind, sheet)

    @router.post(f"{path}/{{sheet_id}}/lock")
    def lock_sheet(
        sheet_id: int,
        tenant_id: int = Depends(require_write(capability)),
        actor_id: str = Depends(get_actor_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        sheet = service.lock(tenant_id, sheet_id, actor_id)
        return serialize_sheet(service.kind, sheet)

    @router.get(f"{path}/{{sheet_id}}/audit")
    def sheet_audit(
        sheet_id: int,
        tenant_id: int = Depends(get_tenant_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        entries = service.list_audit(tenant_id, sheet_id)
        valid, error = service.verify_audit(tenant_id, sheet_id)
        return {
            "sheet_id": sheet_id,
            "valid": valid,
            "error": error,
            "entries": [serialize_audit_entry(entry) for entry in entries],
        }

    @router.get("/students/{student_id}/summary")
    def student_summary(
        student_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        tenant_id: int = Depends(get_tenant_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        summary = service.summarize(tenant_id, VIEW_ENTITY, {"entity_id": student_id}, date_from, date_to)
        return asdict(summary)

    @router.get("/classes/{class_id}/rollup")
    def class_rollup(
        class_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        tenant_id: int = Depends(get_tenant_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        rollup = service.summarize(tenant_id, VIEW_SHEETS, {"class_id": class_id}, date_from, date_to)
        return asdict(rollup)

    @router.get("/classes/{class_id}/flagged")
    def class_flagged(
        class_id: str,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        min_count: Optional[int] = Query(None, ge=1),
        tenant_id: int = Depends(get_tenant_id),
        db: Session = Depends(get_db),
    ):
        service = SheetService(db, kind_name)
        flagged = service.summarize(
            tenant_id, VIEW_FLAGGED, {"class_id": class_id}, date_from, date_to, min_count=min_count
        )
        return {"class_id": class_id, "items": [asdict(item) for item in flagged]}
