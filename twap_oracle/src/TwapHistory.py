"""TwapHistory: Fixed-capacity price ring with a time-weighted average query.

Each push overwrites slot ``(write_index + 1) % capacity``; slots are never
cleared, stale ones are told apart by timestamp. The TWAP walks backward from
the most recent write: every entry newer than ``now - window`` contributes
its price weighted by the gap to the next-older entry, with the boundary
interval clipped at the window start.

The result is a discrete approximation over observed points, so its accuracy
depends on the update cadence relative to the window.

.. code-block:: python

    >>> history = TwapHistory(capacity=4)
    >>> for ts, price in [(100, 10), (200, 20), (300, 30)]:
    ...     _ = history.push(price, ts)
    >>> history.query(150, now=300)
    26
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import InvalidParametersError
from .models import HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 120
DEFAULT_TWAP_PERIOD = 1800  # 30 minutes
MAX_TWAP_WINDOW = 86400  # 24 hours

_EMPTY = HistoryEntry(price=0, timestamp=0, sequence_number=0)


class TwapHistory:
    """Circular buffer of accepted prices.

    :ivar capacity: Number of slots in the ring.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize an empty ring.

        :param capacity: Number of slots (default 120).
        :raises InvalidParametersError: If capacity is less than 1.
        """
        if capacity < 1:
            raise InvalidParametersError("history capacity must be at least 1")
        self.capacity = capacity
        self._slots: list[HistoryEntry] = [_EMPTY] * capacity
        self._write_index = 0
        self._sequence = 0

    def __len__(self) -> int:
        """Number of slots holding a pushed entry."""
        return min(self._sequence, self.capacity)

    @property
    def write_index(self) -> int:
        """Slot of the most recent write."""
        return self._write_index

    def push(self, price: int, timestamp: int) -> HistoryEntry:
        """Append a price, overwriting the oldest slot once full.

        :param price: Accepted price.
        :param timestamp: Time the price was accepted.
        :returns: The stored entry.
        """
        index = (self._write_index + 1) % self.capacity
        entry = HistoryEntry(
            price=price, timestamp=timestamp, sequence_number=self._sequence + 1
        )
        self._slots[index] = entry
        self._write_index = index
        self._sequence = entry.sequence_number
        logger.debug(f"History slot {index} <- {price} @ {timestamp} (#{entry.sequence_number})")
        return entry

    def latest(self) -> HistoryEntry | None:
        """Most recently pushed entry, or None if nothing was pushed."""
        if self._sequence == 0:
            return None
        return self._slots[self._write_index]

    def entries(self) -> list[HistoryEntry]:
        """Stored entries ordered oldest to newest."""
        count = len(self)
        start = self._write_index - count + 1
        return [self._slots[(start + i) % self.capacity] for i in range(count)]

    def query(
        self,
        window_seconds: int,
        now: int,
        default_period: int = DEFAULT_TWAP_PERIOD,
    ) -> int:
        """Time-weighted average price over the trailing window.

        Falls back to the latest pushed price (0 if empty) when the window
        has no coverage.

        :param window_seconds: Lookback window; 0 or more than MAX_TWAP_WINDOW
            selects default_period.
        :param now: Current time.
        :param default_period: Window used when window_seconds is out of range.
        :returns: TWAP price.
        """
        if window_seconds <= 0 or window_seconds > MAX_TWAP_WINDOW:
            window_seconds = default_period
        target = max(now - window_seconds, 0)

        available = len(self)
        weighted_sum = 0
        total_time = 0
        index = self._write_index

        for visited in range(available):
            entry = self._slots[index]
            if entry.timestamp <= target:
                break

            older_index = (index - 1) % self.capacity
            end = min(entry.timestamp, now)
            if visited + 1 < available:
                older_timestamp = self._slots[older_index].timestamp
                start = min(max(older_timestamp, target), end)
            else:
                # Oldest known entry: nothing tells us how long before it the price held
                start = end

            delta = end - start
            weighted_sum += entry.price * delta
            total_time += delta
            index = older_index

        if total_time == 0:
            latest = self.latest()
            return latest.price if latest is not None else 0
        return weighted_sum // total_time

    def to_dict(self) -> dict[str, Any]:
        """Serialize the ring verbatim, including the write position."""
        return {
            "capacity": self.capacity,
            "write_index": self._write_index,
            "sequence": self._sequence,
            "slots": [[e.price, e.timestamp, e.sequence_number] for e in self._slots],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TwapHistory:
        """Rebuild a ring serialized with :meth:`to_dict`.

        :param data: Serialized ring.
        :returns: Restored TwapHistory.
        :raises InvalidParametersError: If the data is inconsistent.
        """
        history = cls(int(data["capacity"]))
        slots = data["slots"]
        write_index = int(data["write_index"])
        if len(slots) != history.capacity:
            raise InvalidParametersError(
                f"History has {len(slots)} slots, expected {history.capacity}"
            )
        if not 0 <= write_index < history.capacity:
            raise InvalidParametersError(f"write_index {write_index} out of range")

        history._slots = [
            HistoryEntry(price=int(p), timestamp=int(t), sequence_number=int(s))
            for p, t, s in slots
        ]
        history._write_index = write_index
        history._sequence = int(data["sequence"])
        return history
