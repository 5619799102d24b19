"""Signals emitted by the engine after state changes are committed.

Listeners are plain callables receiving one of the event dataclasses below.
Delivering them anywhere (logs, on-chain events, a message bus) is up to the
surrounding system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceUpdated:
    price: int
    timestamp: int
    valid_source_count: int


@dataclass(frozen=True)
class CircuitBreakerTripped:
    candidate_price: int
    last_accepted_price: int
    deviation_bps: int
    timestamp: int


@dataclass(frozen=True)
class OutlierDetected:
    """A source excluded from aggregation, attributed by its stable id."""

    source_id: str
    price: int
    median: int
    timestamp: int


@dataclass(frozen=True)
class CircuitBreakerReset:
    reference_price: int
    timestamp: int


@dataclass(frozen=True)
class ParametersUpdated:
    changes: tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class PauseChanged:
    paused: bool


@dataclass(frozen=True)
class EmergencyPriceSet:
    price: int


OracleEvent = Union[
    PriceUpdated,
    CircuitBreakerTripped,
    OutlierDetected,
    CircuitBreakerReset,
    ParametersUpdated,
    PauseChanged,
    EmergencyPriceSet,
]
Listener = Callable[[OracleEvent], None]


class EventDispatcher:
    """Fan-out of events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: OracleEvent) -> None:
        """Deliver an event to every listener.

        The state the event describes is already committed, so a failing
        listener is logged and the remaining listeners still run.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:  # Listener bugs must not undo a committed cycle
                logger.error(f"Event listener {listener!r} failed on {type(event).__name__}: {exc}")
