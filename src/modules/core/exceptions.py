"""Domain error taxonomy shared by every module.

Services raise these; the API layer renders them through
``modules.core.exception_handler``.  Each error carries a stable
``code``, a human-readable ``detail`` and a ``meta`` dict with the
structured context needed to build a precise message (offending ids,
current vs. requested status, available vs. requested stock).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for business-rule failures."""

    code = "error"
    default_detail = "A domain error occurred."
    status_code = 400

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        code: Optional[str] = None,
        **meta: Any,
    ) -> None:
        self.detail = detail or self.default_detail
        if code is not None:
            self.code = code
        self.meta: Dict[str, Any] = meta
        super().__init__(self.detail)


class ValidationError(DomainError):
    """Input cannot be fulfilled; the caller must correct it."""

    code = "invalid"
    default_detail = "Invalid input."
    status_code = 400


class NotFoundError(DomainError):
    """The referenced order or item does not exist."""

    code = "not_found"
    default_detail = "Resource not found."
    status_code = 404


class AuthorizationError(DomainError):
    """The actor is neither the owner nor elevated."""

    code = "permission_denied"
    default_detail = "Access denied."
    status_code = 403


class ConflictError(DomainError):
    """The requested transition is illegal for the current state."""

    code = "conflict"
    default_detail = "Conflicting state."
    status_code = 409


class InternalError(DomainError):
    """Storage or transaction failure; partial writes were rolled back."""

    code = "internal_error"
    default_detail = "Internal error."
    status_code = 500
