"""Value objects passed between the oracle components.

All prices are integers with 8 implied decimals (see ``FixedPointMath``),
all timestamps are integer seconds since the Unix epoch.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Sample:
    """A single source's quote for one update cycle.

    :ivar source_id: Stable identifier of the reporting source.
    :ivar price: Scaled price, 0 meaning the source had nothing to report.
    :ivar weight: Aggregation weight of the source.
    """

    source_id: str
    price: int
    weight: int


@dataclass(frozen=True)
class Aggregate:
    """An accepted aggregate price.

    :ivar price: Weighted average of the inlier samples.
    :ivar timestamp: Time of the update cycle that produced it.
    :ivar valid_source_count: Number of inliers that contributed.
    """

    price: int
    timestamp: int
    valid_source_count: int


@dataclass(frozen=True)
class HistoryEntry:
    """One slot of the TWAP ring buffer."""

    price: int
    timestamp: int
    sequence_number: int


@dataclass(frozen=True)
class CircuitBreakerState:
    """Snapshot of the circuit breaker.

    :ivar is_tripped: True while published prices are frozen.
    :ivar last_accepted_price: Reference price candidates are compared against.
    :ivar last_transition_time: Time of the last trip or reset.
    """

    is_tripped: bool = False
    last_accepted_price: int = 0
    last_transition_time: int = 0


@dataclass(frozen=True)
class CycleResult:
    """Outcome of a completed update cycle.

    Cycles that fail outright raise instead of returning a result.

    :ivar accepted: True if the candidate became the new published price.
    :ivar price: Candidate price computed by the cycle.
    :ivar reject_reason: Why the candidate was rejected, None if accepted.
    :ivar aggregate: The new aggregate when accepted.
    :ivar median: Median of the usable samples.
    :ivar outliers: Source ids excluded as outliers.
    :ivar deviation_bps: Deviation of the candidate from the previous accepted price.
    """

    accepted: bool
    price: int
    reject_reason: str | None = None
    aggregate: Aggregate | None = None
    median: int = 0
    outliers: tuple[str, ...] = field(default_factory=tuple)
    deviation_bps: int = 0

    @property
    def rejected(self) -> bool:
        """Check if the circuit breaker rejected the candidate."""
        return not self.accepted
