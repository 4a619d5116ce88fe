"""Helpers for the status conditions carried by profiles and shared lists."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .resources import Condition, ConditionStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

READY = "Ready"
SYNCED = "Synced"
REFERENCES_RESOLVED = "ReferencesResolved"
VALID = "Valid"
IN_USE = "InUse"


def find_condition(conditions: Sequence[Condition], condition_type: str) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(
    conditions: list[Condition],
    condition_type: str,
    status: ConditionStatus | bool,
    reason: str,
    message: str = "",
    *,
    observed_generation: int | None = None,
    now: datetime | None = None,
) -> Condition:
    """Insert or update a condition in place.

    The transition time only moves when the status value changes, so repeated
    reconciles against unchanged inputs leave the condition list untouched.
    """

    if isinstance(status, bool):
        status = ConditionStatus.TRUE if status else ConditionStatus.FALSE
    timestamp = now or datetime.now(UTC)
    existing = find_condition(conditions, condition_type)
    if existing is not None and existing.status == status:
        transition = existing.last_transition_time or timestamp
    else:
        transition = timestamp
    updated = Condition(
        type=condition_type,
        status=status,
        reason=reason,
        message=message,
        observed_generation=observed_generation,
        last_transition_time=transition,
    )
    if existing is None:
        conditions.append(updated)
    else:
        conditions[conditions.index(existing)] = updated
    return updated


def is_condition_true(conditions: Sequence[Condition], condition_type: str) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE
