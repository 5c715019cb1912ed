"""
Application errors raised by views and helpers.

Each error carries the HTTP status and optional machine-readable code used by
the JSON error handler registered in `create_app()`.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError


class InventoryError(Exception):
    status_code = 400
    code: Optional[str] = None

    def __init__(self, message: str, *, code: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.message}
        if self.code:
            body["code"] = self.code
        body.update(self.payload)
        return body


class NotFoundError(InventoryError):
    status_code = 404
    code = "not_found"


class PermissionDenied(InventoryError):
    status_code = 403
    code = "forbidden"


class ConflictError(InventoryError):
    status_code = 409
    code = "conflict"


class DuplicateNameError(ConflictError):
    code = "duplicate_name"


def is_unique_violation(exc: IntegrityError) -> bool:
    """Tell unique-constraint failures apart from other integrity errors."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode is not None:
        return pgcode == "23505"
    return getattr(orig, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_UNIQUE"
