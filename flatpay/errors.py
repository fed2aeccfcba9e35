# flatpay/errors.py
from __future__ import annotations

from typing import Any, Optional


class FlatPayError(Exception):
    """
    Base of every error a service can raise on purpose.

    Routers never translate these by hand; main.py registers one handler that
    renders {"error": code, "detail": message, **details} with status_code.
    """

    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.details}


class ValidationError(FlatPayError):
    status_code = 400
    code = "validation_error"


class NotFoundError(FlatPayError):
    status_code = 404
    code = "not_found"


class ForbiddenError(FlatPayError):
    status_code = 403
    code = "forbidden"


class ConflictError(FlatPayError):
    status_code = 409
    code = "conflict"


class InvalidStateError(ConflictError):
    code = "invalid_state"


class ExternalServiceError(FlatPayError):
    status_code = 502
    code = "external_service_error"


class RenderError(ExternalServiceError):
    code = "render_failed"


class PartialFailure(FlatPayError):
    """Some members of a batch operation succeeded and some failed; details carry both lists."""

    status_code = 207
    code = "partial_failure"
