"""MedianFilter: Median computation and outlier classification.

Algorithm:
    1. Sort sample prices and take the median (truncated mean of the two
       central values for even counts)
    2. Compute each sample's deviation from the median in basis points
    3. Samples with deviation <= threshold are inliers, the rest outliers

.. code-block:: python

    >>> samples = [Sample("a", 100, 1), Sample("b", 101, 1), Sample("rogue", 200, 1)]
    >>> result = classify(samples, threshold_bps=500)
    >>> result.median
    101
    >>> result.outlier_indices
    (2,)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .FixedPointMath import deviation_bps, median
from .models import Sample


@dataclass(frozen=True)
class FilterResult:
    """Result of median classification.

    :ivar median: Median price of all samples.
    :ivar inliers: Samples within the deviation threshold, in input order.
    :ivar outlier_indices: Input positions of the excluded samples.
    :ivar outliers: The excluded samples, in input order.
    """

    median: int
    inliers: tuple[Sample, ...]
    outlier_indices: tuple[int, ...]
    outliers: tuple[Sample, ...]


def classify(samples: Sequence[Sample], threshold_bps: int) -> FilterResult:
    """Split samples into inliers and outliers around their median.

    A zero median only happens when most samples report zero; in that
    degenerate case zero samples are inliers and everything else an outlier.

    :param samples: Non-empty sequence of samples.
    :param threshold_bps: Maximum inclusive deviation from the median.
    :returns: FilterResult with median and classification.
    :raises ValueError: If samples is empty.
    """
    if not samples:
        raise ValueError("Cannot classify an empty sample set")

    if len(samples) == 1:
        return FilterResult(
            median=samples[0].price,
            inliers=(samples[0],),
            outlier_indices=(),
            outliers=(),
        )

    mid = median(s.price for s in samples)

    inliers: list[Sample] = []
    outlier_indices: list[int] = []
    outliers: list[Sample] = []
    for i, sample in enumerate(samples):
        if mid == 0:
            is_inlier = sample.price == 0
        else:
            is_inlier = deviation_bps(sample.price, mid) <= threshold_bps

        if is_inlier:
            inliers.append(sample)
        else:
            outlier_indices.append(i)
            outliers.append(sample)

    return FilterResult(
        median=mid,
        inliers=tuple(inliers),
        outlier_indices=tuple(outlier_indices),
        outliers=tuple(outliers),
    )
