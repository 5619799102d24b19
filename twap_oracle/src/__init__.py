"""
TWAP Price Oracle - Aggregation Core

This module provides the computation core of a multi-source price oracle:
- FixedPointMath: Integer basis-point and scaled-price helpers
- MedianFilter: Median calculation with outlier classification
- PriceAggregator: Weighted average of inlier prices
- CircuitBreaker: Latching guard against excessive price jumps
- TwapHistory: Fixed-capacity ring buffer with TWAP queries
- OracleEngine: Orchestrator for update cycles, reads and administration
- SourceRegistry: Price source configuration store
"""

from .CircuitBreaker import BreakerDecision, CircuitBreaker
from .errors import (
    CircuitBreakerActiveError,
    InsufficientSourcesError,
    InvalidParametersError,
    NoValidPricesError,
    OracleError,
    PriceStaleError,
)
from .FixedPointMath import BPS_DENOMINATOR, PRICE_DECIMALS, PRICE_SCALE
from .MedianFilter import FilterResult, classify
from .models import Aggregate, CircuitBreakerState, CycleResult, HistoryEntry, Sample
from .OracleEngine import OracleEngine
from .OracleParameters import OracleParameters
from .PriceAggregator import AggregationResult, PriceAggregator, weighted_average
from .PriceSource import PriceSourceConfig
from .SourceRegistry import SourceRegistry
from .TwapHistory import TwapHistory

__all__ = [
    "Aggregate",
    "AggregationResult",
    "BPS_DENOMINATOR",
    "BreakerDecision",
    "CircuitBreaker",
    "CircuitBreakerActiveError",
    "CircuitBreakerState",
    "CycleResult",
    "FilterResult",
    "HistoryEntry",
    "InsufficientSourcesError",
    "InvalidParametersError",
    "NoValidPricesError",
    "OracleEngine",
    "OracleError",
    "OracleParameters",
    "PRICE_DECIMALS",
    "PRICE_SCALE",
    "PriceAggregator",
    "PriceSourceConfig",
    "PriceStaleError",
    "Sample",
    "SourceRegistry",
    "TwapHistory",
    "classify",
    "weighted_average",
]
