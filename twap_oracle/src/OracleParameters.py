"""OracleParameters: Validated, immutable oracle configuration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from .FixedPointMath import BPS_DENOMINATOR
from .errors import InvalidParametersError
from .TwapHistory import DEFAULT_TWAP_PERIOD, MAX_TWAP_WINDOW


@dataclass(frozen=True)
class OracleParameters:
    """Thresholds and periods read by the aggregation, breaker and TWAP logic.

    :ivar price_deviation_threshold_bps: Max deviation from the median before
        a sample is an outlier.
    :ivar circuit_breaker_threshold_bps: Max jump vs the last accepted price.
    :ivar max_price_age: Seconds after which the published price is stale.
    :ivar twap_period: Default TWAP window in seconds.
    :ivar min_sources_required: Minimum usable samples per update cycle.
    """

    price_deviation_threshold_bps: int = 500
    circuit_breaker_threshold_bps: int = 1000
    max_price_age: int = 3600
    twap_period: int = DEFAULT_TWAP_PERIOD
    min_sources_required: int = 2

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise InvalidParametersError("; ".join(errors))

    def validate(self) -> list[str]:
        """Validate parameters, return list of errors."""
        errors = []
        if not 0 < self.price_deviation_threshold_bps <= BPS_DENOMINATOR:
            errors.append("price_deviation_threshold_bps must be in (0, 10000]")
        if self.circuit_breaker_threshold_bps <= 0:
            errors.append("circuit_breaker_threshold_bps must be positive")
        if self.max_price_age <= 0:
            errors.append("max_price_age must be positive")
        if not 0 < self.twap_period <= MAX_TWAP_WINDOW:
            errors.append(f"twap_period must be in (0, {MAX_TWAP_WINDOW}]")
        if self.min_sources_required < 1:
            errors.append("min_sources_required must be at least 1")
        return errors

    def updated(self, **changes: Any) -> OracleParameters:
        """Return a copy with the given fields changed.

        :raises InvalidParametersError: On unknown fields or invalid values.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise InvalidParametersError(f"Unknown parameters: {unknown}")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OracleParameters:
        return cls(**{f.name: int(data[f.name]) for f in fields(cls) if f.name in data})
