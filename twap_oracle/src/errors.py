"""Exception taxonomy for the oracle core.

Every failure the engine reports to its caller derives from
:class:`OracleError`. Update-cycle and administrative failures are raised
before any state is mutated.
"""

from __future__ import annotations


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class InsufficientSourcesError(OracleError):
    """Raised when fewer usable samples than required reach an update cycle.

    :ivar available: Number of samples with a positive price.
    :ivar required: Configured minimum number of sources.
    """

    def __init__(self, available: int, required: int):
        """Initialize the error.

        :param available: Number of usable samples.
        :param required: Minimum sources required.
        """
        self.available = available
        self.required = required
        super().__init__(f"Insufficient sources: {available} available, {required} required")


class NoValidPricesError(OracleError):
    """Raised when outlier filtering leaves no weight to aggregate."""

    pass


class CircuitBreakerActiveError(OracleError):
    """Raised on reads while the circuit breaker is tripped."""

    pass


class PriceStaleError(OracleError):
    """Raised on reads when the last accepted price is older than allowed.

    :ivar age: Seconds since the last accepted update, or None if there was none.
    :ivar max_age: Configured maximum price age in seconds.
    """

    def __init__(self, age: int | None, max_age: int):
        """Initialize the error.

        :param age: Seconds since the last update, None if never updated.
        :param max_age: Maximum allowed age in seconds.
        """
        self.age = age
        self.max_age = max_age
        if age is None:
            message = "No price has been accepted yet"
        else:
            message = f"Price is stale: {age}s old, max age {max_age}s"
        super().__init__(message)


class InvalidParametersError(OracleError, ValueError):
    """Raised when administrative input is rejected."""

    pass
