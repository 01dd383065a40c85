from __future__ import annotations

from typing import Any, Optional


class AnnotatorError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, errors: Optional[list[dict[str, Any]]] = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AnnotatorError):
    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def from_pydantic(cls, exc: Any, prefix: str = "") -> "ValidationError":
        errors = [
            {
                "field": ".".join(str(part) for part in ((prefix,) if prefix else ()) + tuple(error["loc"])),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        message = errors[0]["message"] if len(errors) == 1 else cls.default_message
        return cls(message, errors=errors)


class AuthenticationError(AnnotatorError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AnnotatorError):
    status_code = 403
    default_message = "Not authorized"


class NotFoundError(AnnotatorError):
    status_code = 404
    default_message = "Resource not found"


class PayloadError(AnnotatorError):
    status_code = 400
    default_message = "Invalid upload"
    reason = "invalid"


class UnsupportedMediaType(PayloadError):
    default_message = "Invalid file type. Only PDF files are allowed."
    reason = "unsupported_media_type"


class TooManyFiles(PayloadError):
    default_message = "Too many files. Only one PDF file is allowed."
    reason = "too_many_files"


class EmptyPayload(PayloadError):
    default_message = "Please upload a PDF file"
    reason = "empty"


class PayloadTooLarge(PayloadError):
    status_code = 413
    default_message = "File size too large."
    reason = "too_large"


class StorageError(AnnotatorError):
    status_code = 500
    default_message = "File storage failure"
