"""Tenant-scoped persistence for sheets and their records."""

import logging
import time
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from schola_api.models import Student
from schola_api.services.base import BaseService
from schola_api.sheets.errors import (
    ConcurrentModificationError,
    EntityNotFoundError,
    NotFoundError,
    PersistenceError,
    SheetError,
    TransactionTimeoutError,
    ValidationError,
)
from schola_api.sheets.kinds import RecordKind

logger = logging.getLogger(__name__)

# Postgres SQLSTATEs: query_canceled (statement_timeout), lock_not_available (lock_timeout)
TIMEOUT_SQLSTATES = {"57014", "55P03"}

_clock = time.monotonic


class Deadline:
    """Wall-clock budget of one transaction."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self.expires_at = _clock() + seconds if seconds else None

    def check(self):
        """Raise once the budget is spent."""
        if self.expires_at is not None and _clock() >= self.expires_at:
            raise TransactionTimeoutError(f"Transaction exceeded its {self.seconds:g}s deadline.")


def _is_timeout(exc: OperationalError) -> bool:
    return getattr(exc.orig, "pgcode", None) in TIMEOUT_SQLSTATES


class SheetRepository(BaseService):
    """Reads and writes one kind of sheet, always filtered by tenant."""

    def __init__(self, db: Session, kind: RecordKind):
        super().__init__(db)
        self.kind = kind

    # -- transactions ------------------------------------------------------

    @contextmanager
    def unit_of_work(self, timeout_seconds: Optional[float] = None, lock_timeout_seconds: Optional[float] = None):
        """Run a block as one transaction: commit on success, roll back everything on failure.

        Yields the transaction's Deadline so long-running callers can check it
        between steps. The deadline is checked once more before commit.
        """
        deadline = Deadline(timeout_seconds)
        try:
            self._apply_timeouts(timeout_seconds, lock_timeout_seconds)
            yield deadline
            deadline.check()
            self.db.commit()
        except SheetError:
            self.db.rollback()
            raise
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrentModificationError(
                f"{self.kind.name.capitalize()} sheet was modified concurrently; retry the request."
            ) from e
        except OperationalError as e:
            self.db.rollback()
            if _is_timeout(e):
                raise TransactionTimeoutError("Database timeout exceeded; transaction rolled back.") from e
            logger.error("Sheet transaction failed", exc_info=True, extra={"kind": self.kind.name})
            raise PersistenceError("Storage failure; no changes were applied.") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Sheet transaction failed", exc_info=True, extra={"kind": self.kind.name})
            raise PersistenceError("Storage failure; no changes were applied.") from e
        except Exception:
            self.db.rollback()
            raise

    def _apply_timeouts(self, timeout_seconds: Optional[float], lock_timeout_seconds: Optional[float]):
        """Push transaction-local timeouts down to backends that support them."""
        if self.db.get_bind().dialect.name != "postgresql":
            return
        if timeout_seconds:
            self.db.execute(
                text("SELECT set_config('statement_timeout', :ms, true)"),
                {"ms": str(int(timeout_seconds * 1000))},
            )
        if lock_timeout_seconds:
            self.db.execute(
                text("SELECT set_config('lock_timeout', :ms, true)"),
                {"ms": str(int(lock_timeout_seconds * 1000))},
            )

    # -- sheets ------------------------------------------------------------

    def get_sheet(self, tenant_id: int, sheet_id: int, for_update: bool = False):
        """Load a sheet owned by the tenant; a foreign sheet looks exactly like a missing one."""
        query = self._tenant_query(self.kind.sheet_model, tenant_id).filter(
            self.kind.sheet_model.id == sheet_id
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        sheet = query.first()
        if sheet is None:
            raise NotFoundError(self.kind.name, sheet_id)
        return sheet

    def find_by_scope(self, tenant_id: int, scope_key: dict, for_update: bool = False):
        """Find the sheet for a unique scope key, or None."""
        model = self.kind.sheet_model
        query = self._tenant_query(model, tenant_id).filter_by(**scope_key)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_or_create_sheet(self, tenant_id: int, scope_key: dict, attributes: dict):
        """Return the locked sheet for a scope, creating it if absent.

        A concurrent creator winning the unique constraint is not an error: only
        the insert's savepoint is rolled back and the winner's row is returned.
        """
        sheet = self.find_by_scope(tenant_id, scope_key, for_update=True)
        if sheet is not None:
            return sheet, False

        sheet = self.kind.sheet_model(tenant_id=tenant_id, **scope_key, **attributes)
        try:
            with self.db.begin_nested():
                self.db.add(sheet)
        except IntegrityError:
            sheet = self.find_by_scope(tenant_id, scope_key, for_update=True)
            if sheet is None:
                raise
            return sheet, False
        return sheet, True

    def filter_sheets(self, query, class_id=None, date_from=None, date_to=None, exam_session_id=None):
        """Narrow a sheet query by class, inclusive date range and exam session."""
        model = self.kind.sheet_model
        if exam_session_id is not None:
            if "exam_session_id" not in self.kind.scope_fields:
                raise ValidationError(
                    f"{self.kind.name} sheets have no exam session.", field="exam_session_id"
                )
            query = query.filter(model.exam_session_id == exam_session_id)
        if class_id is not None:
            query = query.filter(model.class_id == class_id)
        if date_from is not None:
            query = query.filter(model.sheet_date >= date_from)
        if date_to is not None:
            query = query.filter(model.sheet_date <= date_to)
        return query

    def list_sheets(
        self, tenant_id: int, class_id: Optional[str] = None, date_from=None, date_to=None, exam_session_id=None
    ):
        """Sheets matching the filters, ordered by date."""
        model = self.kind.sheet_model
        query = self.filter_sheets(
            self._tenant_query(model, tenant_id), class_id, date_from, date_to, exam_session_id
        )
        return query.order_by(model.sheet_date.asc(), model.id.asc()).all()

    # -- records -----------------------------------------------------------

    def load_records(self, tenant_id: int, sheet_id: int, entity_ids: Optional[Iterable[str]] = None) -> dict:
        """Records of a sheet keyed by entity id, in one query."""
        model = self.kind.record_model
        query = self._tenant_query(model, tenant_id).filter(model.sheet_id == sheet_id)
        if entity_ids is not None:
            entity_ids = list(entity_ids)
            if not entity_ids:
                return {}
            query = query.filter(model.entity_id.in_(entity_ids))
        return {record.entity_id: record for record in query.all()}

    def add_records(self, tenant_id: int, sheet_id: int, payloads: dict) -> list:
        """Stage new records, one per entity id -> payload."""
        records = [
            self.kind.record_model(tenant_id=tenant_id, sheet_id=sheet_id, entity_id=entity_id, **payload)
            for entity_id, payload in payloads.items()
        ]
        self.db.add_all(records)
        return records

    # -- roster ------------------------------------------------------------

    def known_entity_ids(self, tenant_id: int, entity_ids: Iterable[str]) -> set[str]:
        """The subset of ``entity_ids`` present in the tenant's student directory."""
        entity_ids = list(entity_ids)
        if not entity_ids:
            return set()
        rows = (
            self._tenant_query(Student, tenant_id)
            .with_entities(Student.id)
            .filter(Student.id.in_(entity_ids))
            .all()
        )
        return {row.id for row in rows}

    def require_known_entities(self, tenant_id: int, entity_ids: Iterable[str]) -> None:
        """Raise EntityNotFoundError for the first id the tenant does not know."""
        entity_ids = list(entity_ids)
        known = self.known_entity_ids(tenant_id, entity_ids)
        for entity_id in entity_ids:
            if entity_id not in known:
                raise EntityNotFoundError(entity_id)

    def active_entity_ids(self, tenant_id: int, class_id: str) -> set[str]:
        """Ids of the active students currently in a class."""
        rows = (
            self._tenant_query(Student, tenant_id)
            .with_entities(Student.id)
            .filter(Student.class_id == class_id, Student.is_active == True)  # noqa: E712
            .all()
        )
        return {row.id for row in rows}
