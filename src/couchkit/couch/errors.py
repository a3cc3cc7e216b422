"""Error taxonomy for CouchDB operations."""

from __future__ import annotations

from typing import Any, Optional


class CouchError(Exception):
    """Base class for failures reported by (or while talking to) CouchDB."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error = error
        self.reason = reason


class NotFoundError(CouchError):
    """The document or database does not exist (404 ``not_found``)."""


class ConflictError(CouchError):
    """Document update conflict (409 ``conflict``)."""


class AlreadyExistsError(CouchError):
    """The database already exists (412 ``file_exists``)."""


class CouchServerError(CouchError):
    """The server answered with a 5xx status. Safe reads may retry these."""


class CouchTransportError(CouchError):
    """The request never got an HTTP answer (DNS, refused, timeout...)."""


_ERRORS_BY_NAME: dict[str, type[CouchError]] = {
    "not_found": NotFoundError,
    "conflict": ConflictError,
    "file_exists": AlreadyExistsError,
}

_ERRORS_BY_STATUS: dict[int, type[CouchError]] = {
    404: NotFoundError,
    409: ConflictError,
    412: AlreadyExistsError,
}


def error_from_response(status: int, body: Any, context: str = "") -> CouchError:
    """
    Build the matching ``CouchError`` subclass for an HTTP error response.

    CouchDB error bodies look like ``{"error": "not_found", "reason": "missing"}``.
    """
    error = reason = None
    if isinstance(body, dict):
        error = body.get("error") if isinstance(body.get("error"), str) else None
        reason = body.get("reason") if isinstance(body.get("reason"), str) else None

    cls = _ERRORS_BY_NAME.get(error or "") or _ERRORS_BY_STATUS.get(status)
    if cls is None:
        cls = CouchServerError if status >= 500 else CouchError

    message = f"{context}: {status} {error or 'error'}" if context else f"{status} {error or 'error'}"
    if reason:
        message += f" ({reason})"
    return cls(message, status=status, error=error, reason=reason)


__all__ = [
    "CouchError",
    "NotFoundError",
    "ConflictError",
    "AlreadyExistsError",
    "CouchServerError",
    "CouchTransportError",
    "error_from_response",
]
