"""Failure classification and requeue policy.

``classify`` dispatches on exception type only; messages are never inspected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from nextdns_operator.domain.ports import (
    CredentialsNotFoundError,
    PolicyAPIError,
    PolicyAuthError,
    PolicyNotFoundError,
    PolicyValidationError,
    ResourceConflictError,
    ResourceNotFoundError,
    StoreError,
)

from .resolve import ReferenceNotFoundError
from .validation import SpecValidationError


class FailureKind(StrEnum):
    NOT_FOUND = "NotFound"
    REFERENCE = "Reference"
    CREDENTIALS = "Credentials"
    TRANSIENT = "Transient"
    AUTH = "Auth"
    VALIDATION = "Validation"
    REJECTED = "Rejected"
    CONFLICT = "Conflict"


# Exceptions a reconcile turns into status; anything else is a bug and escapes.
RECONCILE_ERRORS: tuple[type[Exception], ...] = (
    ReferenceNotFoundError,
    CredentialsNotFoundError,
    SpecValidationError,
    PolicyAPIError,
    StoreError,
)


def classify(exc: BaseException) -> FailureKind:
    match exc:
        case ReferenceNotFoundError():
            return FailureKind.REFERENCE
        case CredentialsNotFoundError():
            return FailureKind.CREDENTIALS
        case SpecValidationError():
            return FailureKind.VALIDATION
        case PolicyValidationError():
            # The API refused a call; the declared state may still be accepted later.
            return FailureKind.REJECTED
        case PolicyAuthError():
            return FailureKind.AUTH
        case PolicyNotFoundError():
            # The remote profile a status or spec points at has vanished.
            return FailureKind.REFERENCE
        case ResourceConflictError():
            return FailureKind.CONFLICT
        case ResourceNotFoundError():
            return FailureKind.NOT_FOUND
        case _:
            return FailureKind.TRANSIENT


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What the work queue should do with a key after a reconcile.

    ``backoff`` asks for the queue's per-key exponential backoff; otherwise
    ``requeue_after`` (seconds) schedules a plain delayed add, and neither means
    the key is done until the next change event.
    """

    requeue_after: float | None = None
    backoff: bool = False
    failure: FailureKind | None = None

    @property
    def requeue(self) -> bool:
        return self.backoff or bool(self.requeue_after)


def result_for_failure(kind: FailureKind, *, auth_retry_interval: float) -> ReconcileResult:
    if kind is FailureKind.VALIDATION or kind is FailureKind.NOT_FOUND:
        return ReconcileResult(failure=kind)
    if kind is FailureKind.AUTH:
        return ReconcileResult(requeue_after=auth_retry_interval, failure=kind)
    return ReconcileResult(backoff=True, failure=kind)


def failure_reason(kind: FailureKind, *, attempt: int, max_retries: int) -> str:
    """Condition reason for a failed reconcile; transient ones escalate after ``max_retries``."""

    match kind:
        case FailureKind.REFERENCE:
            return "ReferenceNotFound"
        case FailureKind.CREDENTIALS:
            return "CredentialsNotFound"
        case FailureKind.AUTH:
            return "AuthenticationFailed"
        case FailureKind.VALIDATION:
            return "ValidationFailed"
        case FailureKind.REJECTED:
            return "RequestRejected"
        case FailureKind.CONFLICT:
            return "Conflict"
        case FailureKind.NOT_FOUND:
            return "NotFound"
        case _:
            return "RetriesExhausted" if attempt >= max_retries else "Retrying"
