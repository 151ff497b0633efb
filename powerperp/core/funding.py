"""
Bounded per-second funding rate provider.

The functional core (`FundingRate`, `bound_funding_rate`) is pure; the
`FundingOracle` shell holds the current rate and answers `get_funding()` for
the ledger's index updates.

Bounds:
- the rate is clamped to ``±MAX_ABSOLUTE_FUNDING_RATE`` (0.75% per 8 hours),
- each update may move the rate by at most ``MAX_RATE_CHANGE_PER_SECOND``
  times the seconds elapsed since the previous update.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Callable

from .perpetual.errors import LedgerGuardError
from .perpetual.math import BASE, abs_val

logger = logging.getLogger(__name__)

SECONDS_PER_8_HOURS: int = 8 * 60 * 60

MAX_ABSOLUTE_FUNDING_RATE: int = BASE * 75 // 10_000 // SECONDS_PER_8_HOURS

# Lets the rate swing across its full range in 45 minutes.
MAX_RATE_CHANGE_PER_SECOND: int = MAX_ABSOLUTE_FUNDING_RATE * 2 // (45 * 60)


@dataclass(frozen=True)
class FundingRate:
    """Signed per-second rate, base-scaled, and the time it was set."""

    value: int = 0
    timestamp: int = 0

    def __post_init__(self) -> None:
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {self.timestamp}")


def bound_funding_rate(current: FundingRate, requested: int, now: int) -> int:
    """Clamp *requested* to the absolute bound and the per-second change bound."""
    if now < current.timestamp:
        raise ValueError(f"now must not precede the last update: {now} < {current.timestamp}")
    bounded = max(-MAX_ABSOLUTE_FUNDING_RATE, min(MAX_ABSOLUTE_FUNDING_RATE, requested))
    max_change = MAX_RATE_CHANGE_PER_SECOND * (now - current.timestamp)
    if current.timestamp == 0:
        return bounded
    return max(current.value - max_change, min(current.value + max_change, bounded))


def funding_over(rate: FundingRate, time_delta: int) -> tuple[bool, int]:
    """``(is_positive, |rate| * time_delta)``."""
    if time_delta < 0:
        raise ValueError(f"time_delta must be non-negative: {time_delta}")
    return rate.value >= 0, abs_val(rate.value) * time_delta


class FundingOracle:
    """Funding provider whose rate is pushed by a single authorized identity."""

    def __init__(self, provider: str, clock: Callable[[], int], initial_rate: int = 0) -> None:
        self.provider = provider
        self._clock = clock
        self._rate = FundingRate(value=0, timestamp=0)
        if initial_rate:
            now = clock()
            self._rate = FundingRate(value=bound_funding_rate(self._rate, initial_rate, now), timestamp=now)

    @property
    def rate(self) -> FundingRate:
        return self._rate

    def get_funding(self, time_delta: int) -> tuple[bool, int]:
        return funding_over(self._rate, time_delta)

    def set_funding_rate(self, sender: str, requested: int) -> int:
        """Store a new rate (after bounding) and return the stored value."""
        if sender != self.provider:
            raise LedgerGuardError("sender_not_funding_provider", f"{sender!r} may not set the funding rate")
        now = self._clock()
        value = bound_funding_rate(self._rate, requested, now)
        if value != requested:
            logger.warning("funding rate %d bounded to %d", requested, value)
        self._rate = replace(self._rate, value=value, timestamp=now)
        logger.info("funding rate set to %d at %d", value, now)
        return value
