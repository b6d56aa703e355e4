"""Typed failures raised by the scheduling services.

Each carries the HTTP status the API layer should answer with, so request
handlers can tell "service not found" apart from "slot taken".
"""

from typing import Any


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message}


class ValidationError(AppError):
    """Malformed input; always caller-correctable."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource") -> None:
        message = resource if "not found" in resource.lower() else f"{resource} not found"
        super().__init__(message)


class ConflictError(AppError):
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        conflicting_appointments: list[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.conflicting_appointments = conflicting_appointments or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.conflicting_appointments:
            data["conflicting_appointments"] = [a._asdict() for a in self.conflicting_appointments]
        return data


class SlotUnavailableError(ConflictError):
    """The requested instant failed the availability check."""

    def __init__(
        self,
        reason: str,
        code: str | None = None,
        conflicting_appointments: list[Any] | None = None,
    ) -> None:
        super().__init__(reason, conflicting_appointments)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.code:
            data["code"] = self.code
        return data


class TerminalStatusError(ConflictError):
    """The appointment is COMPLETED, CANCELLED or NO_SHOW and cannot change."""

    def __init__(self, message: str, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.status:
            data["status"] = self.status
        return data


class DataAccessError(AppError):
    """The store failed. Not retried here; retry policy belongs to the caller."""

    status_code = 503
