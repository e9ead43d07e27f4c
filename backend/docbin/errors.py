# backend/docbin/errors.py
"""Error taxonomy shared by the document service and the HTTP layer.

Each error carries the HTTP status it maps to, so the API only needs one
exception handler to turn any of them into a ``{message, status, path}`` body.
"""
from typing import Any, Dict


class DocbinError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.status_code}


class NotFound(DocbinError):
    """Key, version or file absent, or the document expired"""
    status_code = 404


class Conflict(DocbinError):
    status_code = 409


class Unauthorized(DocbinError):
    """Token missing, malformed, badly signed or expired"""
    status_code = 401


class Forbidden(DocbinError):
    """Token is valid but lacks the required permission for this document"""
    status_code = 403


class InvalidInput(DocbinError):
    status_code = 400


class PayloadTooLarge(InvalidInput):
    status_code = 413


class ResourceExhausted(DocbinError):
    """Key generation retries ran out or a per-key lock could not be taken in time"""
    status_code = 503


__all__ = [
    "DocbinError",
    "NotFound",
    "Conflict",
    "Unauthorized",
    "Forbidden",
    "InvalidInput",
    "PayloadTooLarge",
    "ResourceExhausted",
]
