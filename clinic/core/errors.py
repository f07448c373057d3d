"""
Scheduling error taxonomy.

Every failure the engine reports belongs to one closed ``ErrorKind``. The
HTTP tier maps each kind to a fixed status code so that callers see a
stable outcome regardless of the message text.
"""
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    DOCTOR_NOT_FOUND = "doctor_not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    VALIDATION_ERROR = "validation_error"
    STORE_FAILURE = "store_failure"


STATUS_CODES = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.DOCTOR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.STORE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class SchedulingError(Exception):
    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind.value,
            "message": self.message,
            "context": {key: _jsonable(value) for key, value in self.context.items()},
        }


class NotFoundError(SchedulingError):
    kind = ErrorKind.NOT_FOUND


class DoctorNotFoundError(NotFoundError):
    kind = ErrorKind.DOCTOR_NOT_FOUND

    def __init__(self, doctor_id: Optional[int] = None, message: str = "Doctor not found"):
        super().__init__(message, doctor_id=doctor_id)


class ConflictError(SchedulingError):
    kind = ErrorKind.CONFLICT


class ForbiddenError(SchedulingError):
    kind = ErrorKind.FORBIDDEN


class InvalidRequestError(SchedulingError):
    kind = ErrorKind.VALIDATION_ERROR


class StoreFailure(SchedulingError):
    kind = ErrorKind.STORE_FAILURE


def _jsonable(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
