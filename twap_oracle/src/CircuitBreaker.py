"""CircuitBreaker: Latching guard over successive accepted prices.

The breaker compares every candidate against the last accepted price. A jump
larger than the threshold trips it, and it stays tripped until an explicit
reset: there is no timeout and no automatic recovery. While tripped every
candidate is rejected, so the published price stays frozen pending review.

.. code-block:: python

    >>> breaker = CircuitBreaker()
    >>> breaker.accept(100_000_000)
    >>> decision = breaker.evaluate(115_000_000, threshold_bps=1000)
    >>> decision.accepted, decision.deviation_bps
    (False, 1500)
    >>> breaker.trip(now=1_700_000_000)
    >>> breaker.is_tripped
    True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from .FixedPointMath import deviation_bps
from .models import CircuitBreakerState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakerDecision:
    """Outcome of evaluating a candidate price.

    :ivar accepted: True if the candidate may be published.
    :ivar deviation_bps: Deviation from the last accepted price (0 if unset).
    """

    accepted: bool
    deviation_bps: int


class CircuitBreaker:
    """Two-state (Normal / Tripped) price jump guard.

    State lives in an immutable :class:`CircuitBreakerState` that is replaced
    on every change, so readers always see a consistent snapshot.
    """

    def __init__(self, state: CircuitBreakerState | None = None) -> None:
        self._state = state or CircuitBreakerState()

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def is_tripped(self) -> bool:
        return self._state.is_tripped

    @property
    def last_accepted_price(self) -> int:
        return self._state.last_accepted_price

    def evaluate(self, candidate: int, threshold_bps: int) -> BreakerDecision:
        """Decide whether a candidate may be accepted. Does not mutate state.

        :param candidate: Newly aggregated price.
        :param threshold_bps: Maximum allowed jump vs the last accepted price.
        :returns: BreakerDecision.
        """
        last = self._state.last_accepted_price
        # Unset reference: the first aggregate is always accepted
        deviation = deviation_bps(candidate, last) if last > 0 else 0

        if self._state.is_tripped:
            return BreakerDecision(accepted=False, deviation_bps=deviation)
        return BreakerDecision(accepted=deviation <= threshold_bps, deviation_bps=deviation)

    def trip(self, now: int) -> None:
        """Latch the breaker. The reference price is left untouched.

        :param now: Time of the trip.
        """
        if self._state.is_tripped:
            return
        self._state = replace(self._state, is_tripped=True, last_transition_time=now)
        logger.warning(
            f"Circuit breaker tripped at {now} "
            f"(reference price {self._state.last_accepted_price})"
        )

    def accept(self, price: int) -> None:
        """Record a newly accepted price as the reference for future candidates."""
        self._state = replace(self._state, last_accepted_price=price)

    def reset(self, now: int, reference_price: int | None = None) -> None:
        """Return to Normal. Only an administrative action calls this.

        :param now: Time of the reset.
        :param reference_price: Optional new reference price, used when the
            jump that tripped the breaker is acknowledged as genuine.
        """
        last = self._state.last_accepted_price if reference_price is None else reference_price
        was_tripped = self._state.is_tripped
        self._state = CircuitBreakerState(
            is_tripped=False,
            last_accepted_price=last,
            last_transition_time=now if was_tripped else self._state.last_transition_time,
        )
        logger.info(f"Circuit breaker reset at {now} (reference price {last})")
