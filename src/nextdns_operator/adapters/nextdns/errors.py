"""Map NextDNS HTTP responses and transport failures onto policy API errors."""

from __future__ import annotations

from logging import getLogger

import httpx
from pydantic import ValidationError

from nextdns_operator.domain.ports import (
    PolicyAPIError,
    PolicyAuthError,
    PolicyDuplicateError,
    PolicyNotFoundError,
    PolicyRateLimitedError,
    PolicyTransientError,
    PolicyValidationError,
)

from .schema import ErrorResponse

log = getLogger(__name__)

DUPLICATE_CODES = frozenset({"duplicate", "conflict", "alreadyexists"})
NOT_FOUND_CODES = frozenset({"notfound"})
AUTH_CODES = frozenset({"unauthorized", "forbidden", "invalidapikey"})


def parse_errors(response: httpx.Response) -> ErrorResponse:
    if not response.content:
        return ErrorResponse()
    try:
        return ErrorResponse.model_validate(response.json())
    except (ValueError, ValidationError):
        return ErrorResponse()


def parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def error_for_response(operation: str, response: httpx.Response) -> PolicyAPIError | None:
    """Return the error a response represents, or ``None`` for a successful one.

    NextDNS reports some failures (duplicates in particular) in an ``errors``
    array, occasionally alongside a 2xx status, so the body is inspected too.
    """

    status = response.status_code
    if status < 400 and not _may_carry_errors(response):
        return None
    errors = parse_errors(response)
    if status < 400 and not errors.errors:
        return None

    codes = errors.codes
    detail = errors.message or response.reason_phrase or "request failed"
    message = f"{operation}: HTTP {status}: {detail}"
    if status == 409 or codes & DUPLICATE_CODES:
        return PolicyDuplicateError(message, operation=operation, status_code=status)
    if status == 404 or codes & NOT_FOUND_CODES:
        return PolicyNotFoundError(message, operation=operation, status_code=status)
    if status in (401, 403) or codes & AUTH_CODES:
        return PolicyAuthError(message, operation=operation, status_code=status)
    if status == 429:
        return PolicyRateLimitedError(
            message,
            operation=operation,
            status_code=status,
            retry_after=parse_retry_after(response),
        )
    if status >= 500:
        return PolicyTransientError(message, operation=operation, status_code=status)
    return PolicyValidationError(message, operation=operation, status_code=status)


def error_for_transport(operation: str, exc: httpx.HTTPError) -> PolicyTransientError:
    log.debug("%s: transport failure: %r", operation, exc)
    return PolicyTransientError(f"{operation}: {type(exc).__name__}: {exc}", operation=operation)


def _may_carry_errors(response: httpx.Response) -> bool:
    return b'"errors"' in response.content
