"""Unit tests for MedianFilter."""

import pytest

from twap_oracle.src.MedianFilter import classify
from twap_oracle.src.models import Sample


def _samples(*prices: int) -> list[Sample]:
    return [Sample(f"s{i}", p, 1) for i, p in enumerate(prices)]


class TestMedian:
    """Test the median reported by classify()."""

    def test_odd_count(self) -> None:
        result = classify(_samples(102, 100, 101), threshold_bps=500)
        assert result.median == 101

    def test_even_count_truncated_mean(self) -> None:
        """Even count uses the truncated mean of the two central values."""
        result = classify(_samples(100, 103), threshold_bps=500)
        assert result.median == 101

    def test_single_sample(self) -> None:
        """A single sample is both median and sole inlier."""
        sample = Sample("only", 12345, 7)
        result = classify([sample], threshold_bps=1)
        assert result.median == 12345
        assert result.inliers == (sample,)
        assert result.outlier_indices == ()

    def test_empty(self) -> None:
        with pytest.raises(ValueError, match="empty sample set"):
            classify([], threshold_bps=500)


class TestClassification:
    """Test inlier/outlier classification."""

    def test_all_within_threshold(self) -> None:
        samples = _samples(100_000_000, 100_500_000, 99_800_000)
        result = classify(samples, threshold_bps=500)
        assert result.inliers == tuple(samples)
        assert result.outliers == ()

    def test_outlier_reported_by_original_index(self) -> None:
        samples = _samples(200, 100, 101)
        result = classify(samples, threshold_bps=500)
        assert result.outlier_indices == (0,)
        assert result.outliers == (samples[0],)
        assert [s.source_id for s in result.inliers] == ["s1", "s2"]

    def test_boundary_is_inclusive(self) -> None:
        """Deviation exactly equal to the threshold is an inlier."""
        # median of [100, 100, 105] is 100; 105 deviates exactly 500 bps
        result = classify(_samples(100, 100, 105), threshold_bps=500)
        assert result.outlier_indices == ()

    def test_just_beyond_threshold(self) -> None:
        # 106 deviates 600 bps from 100
        result = classify(_samples(100, 100, 106), threshold_bps=500)
        assert result.outlier_indices == (2,)

    def test_two_extreme_samples_both_outliers(self) -> None:
        """With two far apart samples both deviate from their mean."""
        result = classify(_samples(100_000_000, 200_000_000), threshold_bps=500)
        assert result.median == 150_000_000
        assert result.inliers == ()
        assert result.outlier_indices == (0, 1)

    def test_zero_median_degenerate(self) -> None:
        """With a zero median, zero samples are inliers and the rest outliers."""
        result = classify(_samples(0, 0, 100), threshold_bps=500)
        assert result.median == 0
        assert [s.price for s in result.inliers] == [0, 0]
        assert result.outlier_indices == (2,)
