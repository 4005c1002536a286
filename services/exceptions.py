"""
Errores de dominio del motor de reservas.

Cada error lleva un código estable (para la UI de administración), un mensaje
legible (para el motor de reservas público) y el status HTTP con el que se
expone. Los routers no los atrapan: los traduce utils/error_handlers.py.
"""
from typing import Any, Dict, List, Optional


class LodgingError(Exception):
    code = "LODGING_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LodgingError):
    """Request inválido, se rechaza antes de abrir la transacción"""
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidDateRange(ValidationError):
    code = "INVALID_DATE_RANGE"

    def __init__(self, message: str = "Check-out date must be after check-in date"):
        super().__init__(message)


class NotFound(LodgingError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, identifier: Any = None, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        if message is None:
            message = f'{entity} "{identifier}" not found' if identifier is not None else f"{entity} not found"
        super().__init__(message, {"entity": entity, "id": identifier})


class InsufficientAvailability(LodgingError):
    code = "INSUFFICIENT_AVAILABILITY"
    status_code = 409
    retryable = True

    def __init__(self, room_type: str, shortfall: int, available: int, requested: int):
        self.room_type = room_type
        self.shortfall = shortfall
        self.available = available
        self.requested = requested
        message = (
            f'Only {available} room(s) of type "{room_type}" available for the selected dates. '
            f"Requested: {requested} (short by {shortfall})"
        )
        super().__init__(
            message,
            {"room_type": room_type, "shortfall": shortfall, "available": available, "requested": requested},
        )


class InvalidStatusTransition(LodgingError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, allowed: List[str], message: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = list(allowed)
        message = message or (
            f'Cannot transition from "{from_status}" to "{to_status}". '
            f"Allowed transitions: {', '.join(self.allowed) or 'none'}"
        )
        super().__init__(message, {"from": from_status, "to": to_status, "allowed": self.allowed})


class RoomUnavailable(LodgingError):
    code = "ROOM_UNAVAILABLE"
    status_code = 409

    def __init__(self, message: str, room_id: Optional[int] = None):
        self.room_id = room_id
        super().__init__(message, {"room_id": room_id} if room_id is not None else None)


class ReferenceGenerationExhausted(LodgingError):
    code = "REFERENCE_GENERATION_EXHAUSTED"
    status_code = 503
    retryable = True

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            "Unable to generate a unique booking reference. Please try again.",
            {"attempts": attempts},
        )


class TransactionConflict(LodgingError):
    """Falla de serialización del store que persistió después de los reintentos"""
    code = "TRANSACTION_CONFLICT"
    status_code = 503
    retryable = True

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            "The request could not be completed due to concurrent activity. Please try again.",
            {"attempts": attempts},
        )


class TransactionTimeout(LodgingError):
    code = "TRANSACTION_TIMEOUT"
    status_code = 504
    retryable = True

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"The operation exceeded its {timeout_seconds}s time limit and was aborted.",
            {"timeout_seconds": timeout_seconds},
        )


class LedgerImmutableError(LodgingError):
    code = "LEDGER_IMMUTABLE"
    status_code = 500

    def __init__(self, operation: str):
        super().__init__(
            f"Ledger entries are append-only; {operation} is not allowed. Post a compensating entry instead."
        )


class DuplicateEntity(LodgingError):
    code = "CONFLICT"
    status_code = 409

    def __init__(self, entity: str, field: str, value: Any):
        super().__init__(f'{entity} with {field} "{value}" already exists', {"entity": entity, field: value})
