# Overview: Error taxonomy shared by every settlement service.

"""
Settlement Error Taxonomy

Every service raises one of these (or a subclass defined next to the
service, e.g. PaymentError). The operation boundary in rpos.operations
turns them into the {"success": False, "error": ..., "code": ...} envelope
and rpos.decorators.STATUS_BY_CODE maps `code` onto an HTTP status.

- ValidationError: bad input or a failed business rule. Recoverable.
- NotFoundError: missing OR owned by another tenant. Never distinguish.
- ConfigurationError: setup problem the user must fix (no receipt series).
- ConcurrencyError: lock contention that outlived the retry budget.
- PermissionDeniedError: raised by the permission checker. Not retryable.
- AuthenticationError: no usable principal.
"""

from __future__ import annotations


class SettlementError(Exception):
    """Base class for all domain errors surfaced through the envelope."""

    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SettlementError):
    code = "validation_error"


class NotFoundError(SettlementError):
    code = "not_found"


class ConfigurationError(SettlementError):
    code = "configuration_error"


class ConcurrencyError(SettlementError):
    code = "concurrency_conflict"


class PermissionDeniedError(SettlementError):
    code = "permission_denied"


class AuthenticationError(SettlementError):
    code = "authentication_required"
