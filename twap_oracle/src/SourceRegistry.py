"""SourceRegistry: Store of price source configurations.

The registry owns every :class:`PriceSourceConfig`. It turns the raw quotes
handed over by the data-acquisition layer into samples for an update cycle:
only active sources contribute, and a source whose quote is missing simply
contributes no sample (the core never distinguishes a failed fetch from an
illiquid pool).

.. code-block:: python

    >>> registry = SourceRegistry()
    >>> src = registry.add_source("pool-a", "0xb4e16d0168e52d35cacd2c6185b44281ec28c9dc", weight=100)
    >>> samples = registry.build_samples({src.id: 100_000_000})
    >>> samples[0].weight
    100
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from .errors import InvalidParametersError
from .models import Sample
from .PriceSource import PriceSourceConfig

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Registry of price sources.

    :ivar max_sources: Maximum number of sources that may be registered.
    """

    DEFAULT_MAX_SOURCES = 20

    def __init__(
        self,
        sources: Iterable[PriceSourceConfig] = (),
        max_sources: int = DEFAULT_MAX_SOURCES,
    ) -> None:
        """Initialize the registry.

        :param sources: Initial sources.
        :param max_sources: Maximum number of registered sources.
        """
        self.max_sources = max_sources
        self._sources: dict[str, PriceSourceConfig] = {}
        for source in sources:
            self.register(source)

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._sources

    def register(self, source: PriceSourceConfig) -> PriceSourceConfig:
        """Register an already built source.

        :param source: Source to add.
        :returns: The registered source.
        :raises InvalidParametersError: If the id is taken or the registry is full.
        """
        if source.id in self._sources:
            raise InvalidParametersError(f"Source {source.id} already registered")
        if len(self._sources) >= self.max_sources:
            raise InvalidParametersError(f"Cannot register more than {self.max_sources} sources")
        self._sources[source.id] = source
        logger.info(f"Registered source {source} ({source.external_ref}, weight={source.weight})")
        return source

    def add_source(self, label: str, external_ref: str, weight: int = 1) -> PriceSourceConfig:
        """Create and register a source.

        :param label: Human-readable label.
        :param external_ref: Hex address of the external contract.
        :param weight: Aggregation weight.
        :returns: The registered source.
        :raises InvalidParametersError: On invalid input or a duplicate source.
        """
        return self.register(PriceSourceConfig.create(label, external_ref, weight=weight))

    def remove_source(self, source_id: str) -> None:
        """Remove a source.

        :raises InvalidParametersError: If the source is unknown.
        """
        source = self.get(source_id)
        del self._sources[source_id]
        logger.info(f"Removed source {source}")

    def get(self, source_id: str) -> PriceSourceConfig:
        """Look up a source.

        :raises InvalidParametersError: If the source is unknown.
        """
        source = self._sources.get(source_id)
        if source is None:
            raise InvalidParametersError(f"Unknown source {source_id}")
        return source

    def set_active(self, source_id: str, active: bool) -> None:
        source = self.get(source_id)
        source.active = active
        logger.info(f"Source {source} {'activated' if active else 'deactivated'}")

    def set_weight(self, source_id: str, weight: int) -> None:
        """Change a source's aggregation weight.

        :raises InvalidParametersError: If weight is not positive or the source is unknown.
        """
        source = self.get(source_id)
        if weight <= 0:
            raise InvalidParametersError(f"Source {source}: weight must be positive")
        source.weight = weight
        logger.info(f"Source {source} weight set to {weight}")

    def all_sources(self) -> list[PriceSourceConfig]:
        return list(self._sources.values())

    def active_sources(self) -> list[PriceSourceConfig]:
        """Sources currently taking part in aggregation."""
        return [s for s in self._sources.values() if s.active]

    def build_samples(self, prices: Mapping[str, int | None]) -> list[Sample]:
        """Build samples for the active sources that reported a price.

        :param prices: Source id mapped to a scaled price, or None if the
            source had nothing to report this cycle.
        :returns: Samples in registration order.
        """
        samples = []
        for source in self.active_sources():
            price = prices.get(source.id)
            if price is None:
                logger.debug(f"[{source}] No price this cycle")
                continue
            samples.append(Sample(source_id=source.id, price=price, weight=source.weight))

        unknown = [s for s in prices if s not in self._sources]
        if unknown:
            logger.warning(f"Ignoring prices from unregistered sources: {unknown}")
        return samples

    def record_prices(self, samples: Iterable[Sample], now: int) -> None:
        """Write the audit trail back for sources that contributed a sample."""
        for sample in samples:
            source = self._sources.get(sample.source_id)
            if source is None or sample.price <= 0:
                continue
            source.last_price = sample.price
            source.last_update_time = now
