"""Per-reconcile deadline and resync timing."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

SYNC_JITTER_FRACTION = 0.10


@dataclass(frozen=True, slots=True)
class Deadline:
    """Absolute point on the monotonic clock after which external calls are abandoned."""

    expires_at: float
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)

    @classmethod
    def after(cls, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> Deadline:
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self.clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


def calculate_sync_interval(period: float, *, rng: random.Random | None = None) -> float:
    """Spread periodic resyncs by +/-10% so profiles do not hit the API in lockstep.

    A period of zero (or less) disables periodic resync and returns 0.
    """

    if period <= 0:
        return 0.0
    source = rng or random
    return period * (1.0 + source.uniform(-SYNC_JITTER_FRACTION, SYNC_JITTER_FRACTION))
