"""OracleEngine: Orchestrator for update cycles, reads and administration.

One update cycle runs, in order:
    1. Drop samples without a positive price; fail if fewer than
       min_sources_required remain (InsufficientSourcesError)
    2. Median outlier filter + weighted average (NoValidPricesError)
    3. Circuit breaker evaluation; a rejected candidate trips the breaker
    4. Accepted candidates become the published aggregate and enter the
       TWAP history

Mutating operations (update cycles and admin hooks) are serialized by a
single lock and either complete or leave every piece of state untouched.
Reads never take the lock: committed state lives in immutable objects that
are swapped by reference, so a reader sees the last fully committed cycle.

.. code-block:: python

    >>> engine = OracleEngine(OracleParameters(min_sources_required=2))
    >>> result = engine.run_update_cycle(
    ...     [Sample("a", 100_000_000, 100), Sample("b", 100_500_000, 100)],
    ...     now=1_700_000_000,
    ... )
    >>> result.accepted, result.price
    (True, 100250000)
    >>> engine.latest_answer(now=1_700_000_060)
    100250000
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Iterable, Mapping

from .CircuitBreaker import CircuitBreaker
from .errors import (
    CircuitBreakerActiveError,
    InsufficientSourcesError,
    InvalidParametersError,
    NoValidPricesError,
    PriceStaleError,
)
from .events import (
    CircuitBreakerReset,
    CircuitBreakerTripped,
    EmergencyPriceSet,
    EventDispatcher,
    Listener,
    OracleEvent,
    OutlierDetected,
    ParametersUpdated,
    PauseChanged,
    PriceUpdated,
)
from .models import Aggregate, CircuitBreakerState, CycleResult, Sample
from .OracleParameters import OracleParameters
from .PriceAggregator import PriceAggregator
from .SourceRegistry import SourceRegistry
from .TwapHistory import DEFAULT_CAPACITY, TwapHistory

logger = logging.getLogger(__name__)

REJECT_CIRCUIT_BREAKER = "circuit_breaker"

SNAPSHOT_VERSION = 1


class OracleEngine:
    """Price aggregation engine for one feed.

    :ivar registry: Optional source registry used by update_from_sources().
    :ivar history: TWAP ring of accepted prices.
    """

    def __init__(
        self,
        parameters: OracleParameters | None = None,
        history_size: int = DEFAULT_CAPACITY,
        registry: SourceRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        :param parameters: Oracle parameters (defaults if None).
        :param history_size: Capacity of the TWAP ring (default 120).
        :param registry: Source registry for update_from_sources().
        :param clock: Time source used when a call omits ``now``.
        """
        self._parameters = parameters or OracleParameters()
        self.history = TwapHistory(history_size)
        self.registry = registry
        self._clock = clock
        self._lock = threading.RLock()
        self._breaker = CircuitBreaker()
        self._events = EventDispatcher()

        self._aggregate: Aggregate | None = None
        self._paused = False
        self._emergency_price = 0

        logger.info(
            f"OracleEngine initialized: params={self._parameters}, history_size={history_size}"
        )

    # ---- committed state ----

    @property
    def parameters(self) -> OracleParameters:
        return self._parameters

    @property
    def breaker_state(self) -> CircuitBreakerState:
        return self._breaker.state

    @property
    def latest_aggregate(self) -> Aggregate | None:
        return self._aggregate

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def emergency_price(self) -> int:
        return self._emergency_price

    def subscribe(self, listener: Listener) -> None:
        """Register a callable receiving events after each committed change."""
        self._events.subscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._events.unsubscribe(listener)

    def _now(self, now: int | None) -> int:
        return int(self._clock()) if now is None else int(now)

    # ---- update cycle ----

    def run_update_cycle(self, samples: Iterable[Sample], now: int | None = None) -> CycleResult:
        """Run one full update cycle over the given samples.

        :param samples: One sample per active source; zero prices are ignored.
        :param now: Cycle time (engine clock if None).
        :returns: CycleResult, accepted or rejected by the circuit breaker.
        :raises InsufficientSourcesError: If too few samples have a positive price.
        :raises NoValidPricesError: If no inlier weight survives filtering.
        :raises InvalidParametersError: If a sample has a negative weight or ``now``
            is earlier than the published aggregate.
        """
        now = self._now(now)
        events: list[OracleEvent] = []

        samples = list(samples)

        with self._lock:
            if self._aggregate is not None and now < self._aggregate.timestamp:
                logger.warning(
                    f"Update cycle at {now} rejected: earlier than the published "
                    f"aggregate at {self._aggregate.timestamp}"
                )
                raise InvalidParametersError(
                    f"Cycle time {now} is earlier than the last update at {self._aggregate.timestamp}"
                )
            for sample in samples:
                if sample.weight < 0:
                    raise InvalidParametersError(
                        f"[{sample.source_id}] weight must not be negative: {sample.weight}"
                    )

            params = self._parameters
            usable = [s for s in samples if s.price > 0]
            if len(usable) < params.min_sources_required:
                logger.warning(
                    f"Update cycle at {now} aborted: {len(usable)} usable samples, "
                    f"{params.min_sources_required} required"
                )
                raise InsufficientSourcesError(len(usable), params.min_sources_required)

            aggregator = PriceAggregator(params.price_deviation_threshold_bps)
            try:
                agg = aggregator.aggregate(usable)
            except NoValidPricesError as exc:
                logger.warning(f"Update cycle at {now} aborted: {exc}")
                raise

            for outlier in agg.outliers:
                logger.warning(
                    f"[{outlier.source_id}] Outlier {outlier.price} excluded (median {agg.median})"
                )
                events.append(
                    OutlierDetected(
                        source_id=outlier.source_id,
                        price=outlier.price,
                        median=agg.median,
                        timestamp=now,
                    )
                )

            decision = self._breaker.evaluate(agg.price, params.circuit_breaker_threshold_bps)
            outlier_ids = tuple(s.source_id for s in agg.outliers)

            if not decision.accepted:
                previous = self._breaker.last_accepted_price
                self._breaker.trip(now)
                self._record_sources(usable, now)
                logger.warning(
                    f"Candidate {agg.price} rejected: {decision.deviation_bps} bps from "
                    f"{previous} (threshold {params.circuit_breaker_threshold_bps} bps)"
                )
                events.append(
                    CircuitBreakerTripped(
                        candidate_price=agg.price,
                        last_accepted_price=previous,
                        deviation_bps=decision.deviation_bps,
                        timestamp=now,
                    )
                )
                result = CycleResult(
                    accepted=False,
                    price=agg.price,
                    reject_reason=REJECT_CIRCUIT_BREAKER,
                    median=agg.median,
                    outliers=outlier_ids,
                    deviation_bps=decision.deviation_bps,
                )
            else:
                aggregate = Aggregate(
                    price=agg.price, timestamp=now, valid_source_count=agg.count
                )
                self._breaker.accept(aggregate.price)
                self.history.push(aggregate.price, now)
                self._aggregate = aggregate
                self._record_sources(usable, now)
                logger.info(
                    f"Price updated: {aggregate.price} from {agg.count} sources "
                    f"(median {agg.median}, dropped {len(outlier_ids)})"
                )
                events.append(
                    PriceUpdated(
                        price=aggregate.price,
                        timestamp=now,
                        valid_source_count=aggregate.valid_source_count,
                    )
                )
                result = CycleResult(
                    accepted=True,
                    price=aggregate.price,
                    aggregate=aggregate,
                    median=agg.median,
                    outliers=outlier_ids,
                    deviation_bps=decision.deviation_bps,
                )

        for event in events:
            self._events.emit(event)
        return result

    def update_from_sources(
        self, prices: Mapping[str, int | None], now: int | None = None
    ) -> CycleResult:
        """Run an update cycle from raw per-source quotes.

        :param prices: Source id mapped to scaled price, None if unavailable.
        :param now: Cycle time (engine clock if None).
        :returns: CycleResult.
        :raises InvalidParametersError: If the engine has no registry.
        """
        if self.registry is None:
            raise InvalidParametersError("update_from_sources requires a source registry")
        with self._lock:
            samples = self.registry.build_samples(prices)
            return self.run_update_cycle(samples, now)

    def _record_sources(self, samples: list[Sample], now: int) -> None:
        if self.registry is not None:
            self.registry.record_prices(samples, now)

    # ---- read side ----

    def latest_answer(self, now: int | None = None) -> int:
        """Return the published price.

        :param now: Read time (engine clock if None).
        :returns: Emergency price while paused, otherwise the last accepted price.
        :raises CircuitBreakerActiveError: If the breaker is tripped.
        :raises PriceStaleError: If the last accepted price is too old or missing.
        """
        if self._paused:
            return self._emergency_price

        if self._breaker.is_tripped:
            raise CircuitBreakerActiveError("Circuit breaker is active")

        now = self._now(now)
        aggregate = self._aggregate
        max_age = self._parameters.max_price_age
        if aggregate is None:
            raise PriceStaleError(None, max_age)
        age = now - aggregate.timestamp
        if age > max_age:
            raise PriceStaleError(age, max_age)
        return aggregate.price

    def latest_with_validity(self, now: int | None = None) -> tuple[int, bool]:
        """Return the published price with a validity flag. Never raises.

        :param now: Read time (engine clock if None).
        :returns: Tuple of (price, is_valid).
        """
        now = self._now(now)
        params = self._parameters
        aggregate = self._aggregate

        if self._paused:
            return self._emergency_price, False
        if aggregate is None:
            return 0, False

        stale = now - aggregate.timestamp > params.max_price_age
        is_valid = (
            not self._breaker.is_tripped
            and not stale
            and aggregate.valid_source_count >= params.min_sources_required
        )
        return aggregate.price, is_valid

    def query_twap(self, window_seconds: int = 0, now: int | None = None) -> int:
        """Time-weighted average of accepted prices over the trailing window.

        :param window_seconds: Lookback window; 0 selects the configured twap_period.
        :param now: Read time (engine clock if None).
        :returns: TWAP, or the last accepted price when the window has no coverage.
        """
        now = self._now(now)
        return self.history.query(window_seconds, now, self._parameters.twap_period)

    # ---- administration ----

    def reset_breaker(self, now: int | None = None, reference_price: int | None = None) -> None:
        """Clear a tripped circuit breaker.

        :param now: Time of the reset (engine clock if None).
        :param reference_price: Optional new reference price for future candidates.
        :raises InvalidParametersError: If reference_price is not positive.
        """
        if reference_price is not None and reference_price <= 0:
            raise InvalidParametersError("reference_price must be positive")
        now = self._now(now)
        with self._lock:
            self._breaker.reset(now, reference_price)
            state = self._breaker.state
        self._events.emit(
            CircuitBreakerReset(reference_price=state.last_accepted_price, timestamp=now)
        )

    def set_parameters(self, **changes: int) -> OracleParameters:
        """Change one or more parameters atomically.

        :param changes: Parameter names mapped to new values.
        :returns: The new parameters.
        :raises InvalidParametersError: On unknown names or invalid values.
        """
        with self._lock:
            updated = self._parameters.updated(**changes)
            self._parameters = updated
        logger.info(f"Parameters updated: {changes}")
        self._events.emit(ParametersUpdated(changes=tuple(sorted(changes.items()))))
        return updated

    def set_paused(self, paused: bool) -> None:
        with self._lock:
            self._paused = bool(paused)
        logger.info(f"Oracle {'paused' if paused else 'unpaused'}")
        self._events.emit(PauseChanged(paused=bool(paused)))

    def set_emergency_price(self, price: int) -> None:
        """Set the price served while paused.

        :raises InvalidParametersError: If price is not positive.
        """
        if price <= 0:
            raise InvalidParametersError("emergency price must be positive")
        with self._lock:
            self._emergency_price = price
        logger.info(f"Emergency price set to {price}")
        self._events.emit(EmergencyPriceSet(price=price))

    # ---- persistence boundary ----

    def snapshot(self) -> dict[str, Any]:
        """Export the full engine state as JSON-safe data."""
        with self._lock:
            breaker = self._breaker.state
            aggregate = self._aggregate
            return {
                "version": SNAPSHOT_VERSION,
                "parameters": self._parameters.to_dict(),
                "breaker": {
                    "is_tripped": breaker.is_tripped,
                    "last_accepted_price": breaker.last_accepted_price,
                    "last_transition_time": breaker.last_transition_time,
                },
                "aggregate": None
                if aggregate is None
                else {
                    "price": aggregate.price,
                    "timestamp": aggregate.timestamp,
                    "valid_source_count": aggregate.valid_source_count,
                },
                "paused": self._paused,
                "emergency_price": self._emergency_price,
                "history": self.history.to_dict(),
            }

    @classmethod
    def from_snapshot(
        cls,
        data: Mapping[str, Any],
        registry: SourceRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> OracleEngine:
        """Rebuild an engine exported with :meth:`snapshot`.

        :param data: Snapshot data.
        :param registry: Optional source registry.
        :param clock: Time source used when a call omits ``now``.
        :returns: Engine resuming exactly where the snapshot was taken.
        :raises InvalidParametersError: If the snapshot is malformed.
        """
        if data.get("version") != SNAPSHOT_VERSION:
            raise InvalidParametersError(f"Unsupported snapshot version {data.get('version')}")
        try:
            history = TwapHistory.from_dict(data["history"])
            engine = cls(
                OracleParameters.from_dict(data["parameters"]),
                history_size=history.capacity,
                registry=registry,
                clock=clock,
            )
            breaker = data["breaker"]
            engine._breaker = CircuitBreaker(
                CircuitBreakerState(
                    is_tripped=bool(breaker["is_tripped"]),
                    last_accepted_price=int(breaker["last_accepted_price"]),
                    last_transition_time=int(breaker["last_transition_time"]),
                )
            )
            aggregate = data.get("aggregate")
            if aggregate is not None:
                engine._aggregate = Aggregate(
                    price=int(aggregate["price"]),
                    timestamp=int(aggregate["timestamp"]),
                    valid_source_count=int(aggregate["valid_source_count"]),
                )
            engine._paused = bool(data.get("paused", False))
            engine._emergency_price = int(data.get("emergency_price", 0))
            engine.history = history
        except InvalidParametersError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidParametersError(f"Malformed snapshot: {e}") from e

        logger.info(
            f"OracleEngine restored: {len(history)} history entries, "
            f"tripped={engine.breaker_state.is_tripped}, paused={engine.paused}"
        )
        return engine
