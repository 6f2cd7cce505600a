"""Errors raised by the sheet engine.

Every error carries an HTTP-equivalent ``status_code`` and a ``context`` dict
(entity id, field, current status, ...) so callers can fix their input
without parsing the message.
"""

from typing import Iterable, Optional


class SheetError(Exception):
    """Base class for sheet engine errors."""

    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}


class ValidationError(SheetError):
    """Malformed input; raised before any persistence touch."""

    status_code = 400

    def __init__(self, message: str, entity_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, entity_id=entity_id, field=field)
        self.entity_id = entity_id
        self.field = field


class NotFoundError(SheetError):
    """Sheet missing, or owned by another tenant (indistinguishable on purpose)."""

    status_code = 404

    def __init__(self, kind: str, sheet_id):
        super().__init__(f"{kind.capitalize()} sheet {sheet_id} not found.", sheet_id=sheet_id)


class EntityNotFoundError(NotFoundError):
    """Entity id not in the tenant's student directory (or owned by another tenant)."""

    def __init__(self, entity_id: str):
        SheetError.__init__(self, f"Student {entity_id} not found.", entity_id=entity_id)
        self.entity_id = entity_id


class NotEditableError(SheetError):
    """Mutation attempted on a sheet that is not EDITABLE."""

    status_code = 409

    _HINTS = {
        "SUBMITTED": "unlock required",
        "LOCKED": "permanently locked",
    }

    def __init__(self, status: str):
        hint = self._HINTS.get(status, "not editable")
        super().__init__(f"Sheet is {status}: {hint}.", status=status)
        self.status = status


class InvalidTransitionError(SheetError):
    """Lifecycle transition not allowed from the current status."""

    status_code = 409

    def __init__(self, action: str, status: str):
        super().__init__(f"Cannot {action} a sheet that is {status}.", action=action, status=status)
        self.action = action
        self.status = status


class IncompleteError(SheetError):
    """Submit preconditions unmet."""

    status_code = 409

    def __init__(self, message: str, missing_entity_ids: Iterable[str] = ()):
        missing = sorted(missing_entity_ids)
        super().__init__(message, missing_entity_ids=missing or None)
        self.missing_entity_ids = missing


class PersistenceError(SheetError):
    """Storage failure mid-operation; the whole operation was rolled back."""

    status_code = 500
    retryable = False


class ConcurrentModificationError(PersistenceError):
    """Another transaction changed the sheet first; safe for the caller to retry."""

    status_code = 409
    retryable = True


class TransactionTimeoutError(SheetError, TimeoutError):
    """Transaction deadline exceeded; the whole operation was rolled back."""

    status_code = 504
