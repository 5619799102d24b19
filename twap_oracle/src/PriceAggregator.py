"""PriceAggregator: Outlier-filtered weighted average of source samples.

Algorithm:
    1. Classify samples around their median (see ``MedianFilter``)
    2. Drop outliers deviating > deviation_threshold_bps from the median
    3. Weighted average of the inliers: sum(price * weight) // sum(weight)
    4. Fail with NoValidPricesError if no inlier weight remains

.. code-block:: python

    >>> aggregator = PriceAggregator(deviation_threshold_bps=500)
    >>> samples = [
    ...     Sample("coinbase", 100_000_000, 100),
    ...     Sample("kraken", 100_500_000, 100),
    ...     Sample("rogue", 200_000_000, 100),
    ... ]
    >>> result = aggregator.aggregate(samples)
    >>> result.price
    100250000
    >>> result.dropped
    {'rogue': 200000000}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .errors import InvalidParametersError, NoValidPricesError
from .MedianFilter import classify
from .models import Sample


def weighted_average(inliers: Sequence[Sample]) -> int:
    """Weighted average price of the given samples.

    :param inliers: Samples that survived outlier filtering.
    :returns: ``sum(price * weight) // sum(weight)``.
    :raises NoValidPricesError: If inliers is empty or their total weight is zero.
    :raises InvalidParametersError: If a weight is negative.

    .. code-block:: python

        >>> weighted_average([Sample("a", 100, 3), Sample("b", 200, 1)])
        125
    """
    if not inliers:
        raise NoValidPricesError("No inlier prices to aggregate")

    for s in inliers:
        if s.weight < 0:
            raise InvalidParametersError(f"[{s.source_id}] weight must not be negative: {s.weight}")

    total_weight = sum(s.weight for s in inliers)
    if total_weight == 0:
        raise NoValidPricesError("Total inlier weight is zero")

    weighted_sum = sum(s.price * s.weight for s in inliers)
    return weighted_sum // total_weight


@dataclass(frozen=True)
class AggregationResult:
    """Result of price aggregation.

    :ivar price: Weighted average of the inliers.
    :ivar median: Median of all samples before filtering.
    :ivar inliers: Samples used in the average.
    :ivar outliers: Samples dropped as outliers.
    :ivar outlier_indices: Input positions of the dropped samples.
    """

    price: int
    median: int
    inliers: tuple[Sample, ...]
    outliers: tuple[Sample, ...]
    outlier_indices: tuple[int, ...]

    @property
    def sources(self) -> list[str]:
        """Source ids used in the final calculation."""
        return [s.source_id for s in self.inliers]

    @property
    def dropped(self) -> dict[str, int]:
        """Dropped source ids mapped to the price they reported."""
        return {s.source_id: s.price for s in self.outliers}

    @property
    def count(self) -> int:
        """Number of samples used."""
        return len(self.inliers)


class PriceAggregator:
    """Aggregates samples from multiple sources with outlier detection.

    :ivar deviation_threshold_bps: Max allowed deviation from the median.

    .. code-block:: python

        >>> agg = PriceAggregator(deviation_threshold_bps=500)
        >>> agg.aggregate([Sample("a", 100, 1), Sample("b", 102, 1)]).price
        101
    """

    def __init__(self, deviation_threshold_bps: int = 500) -> None:
        """Initialize the aggregator.

        :param deviation_threshold_bps: Maximum allowed deviation from median
            before a sample is considered an outlier (default 500 = 5%).
        :raises InvalidParametersError: If the threshold is negative.
        """
        if deviation_threshold_bps < 0:
            raise InvalidParametersError("deviation_threshold_bps must not be negative")
        self.deviation_threshold_bps = deviation_threshold_bps

    def aggregate(self, samples: Sequence[Sample]) -> AggregationResult:
        """Aggregate samples into a single weighted price.

        :param samples: Non-empty sequence of samples with positive prices.
        :returns: AggregationResult with price and classification.
        :raises NoValidPricesError: If samples is empty or no inlier weight remains.
        """
        if not samples:
            raise NoValidPricesError("No samples to aggregate")

        filtered = classify(samples, self.deviation_threshold_bps)
        price = weighted_average(filtered.inliers)

        return AggregationResult(
            price=price,
            median=filtered.median,
            inliers=filtered.inliers,
            outliers=filtered.outliers,
            outlier_indices=filtered.outlier_indices,
        )
