"""
Error taxonomy shared by the core and the HTTP/CLI shell.

Every error carries a machine-readable ``code`` and a ``kind`` that tells a
caller how to react:

    validation   malformed input, rejected before any mutation
    domain       a business rule refused the operation
    not_found    the referenced record does not exist
    conflict     the record changed concurrently; refetch and retry
    unavailable  the store could not be reached; retry later

Only ``conflict`` and ``unavailable`` are retryable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class BackofficeError(Exception):
    kind = "domain"
    code = "backoffice_error"
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code.replace("_", " "))

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": str(self),
            "error": self.code,
            "kind": self.kind,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ValidationFailed(BackofficeError):
    kind = "validation"
    code = "validation_failed"

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"invalid input: {summary}" if summary else None)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = [e.to_dict() for e in self.errors]
        return payload


def raise_if_errors(errors: list[FieldError]) -> None:
    if errors:
        raise ValidationFailed(errors)


class DomainError(BackofficeError):
    kind = "domain"
    code = "domain_error"


class InvalidTransition(DomainError):
    code = "invalid_transition"


class OrderLocked(DomainError):
    code = "order_locked"


class LineNotFound(DomainError):
    code = "line_not_found"


class LineAlreadyVoided(DomainError):
    code = "line_already_voided"


class LineNotVoided(DomainError):
    code = "line_not_voided"


class ConsolidationMismatch(DomainError):
    code = "consolidation_mismatch"


class DirectionMismatch(DomainError):
    code = "direction_mismatch"


class InvalidPaymentStatus(DomainError):
    code = "invalid_payment_status"


class InvalidStatusTransition(DomainError):
    code = "invalid_status_transition"


class InsufficientTender(DomainError):
    code = "insufficient_tender"


class PaymentsExist(DomainError):
    code = "payments_exist"


class NotFound(BackofficeError):
    kind = "not_found"
    code = "not_found"


class ConflictError(BackofficeError):
    kind = "conflict"
    code = "conflict"
    retryable = True


class UnavailableError(BackofficeError):
    kind = "unavailable"
    code = "unavailable"
    retryable = True
