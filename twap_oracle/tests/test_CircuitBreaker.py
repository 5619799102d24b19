"""Unit tests for CircuitBreaker."""

from twap_oracle.src.CircuitBreaker import CircuitBreaker
from twap_oracle.src.models import CircuitBreakerState


class TestCircuitBreakerEvaluate:
    """Test candidate evaluation."""

    def test_initial_state_normal(self) -> None:
        breaker = CircuitBreaker()
        assert breaker.state == CircuitBreakerState()
        assert not breaker.is_tripped

    def test_first_price_always_accepted(self) -> None:
        """An unset reference price never trips the breaker."""
        breaker = CircuitBreaker()
        decision = breaker.evaluate(999_000_000_000, threshold_bps=1)
        assert decision.accepted
        assert decision.deviation_bps == 0

    def test_within_threshold(self) -> None:
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        decision = breaker.evaluate(110_000_000, threshold_bps=1000)
        assert decision.accepted
        assert decision.deviation_bps == 1000

    def test_beyond_threshold(self) -> None:
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        decision = breaker.evaluate(115_000_000, threshold_bps=1000)
        assert not decision.accepted
        assert decision.deviation_bps == 1500

    def test_evaluate_does_not_mutate(self) -> None:
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        before = breaker.state
        breaker.evaluate(200_000_000, threshold_bps=1000)
        assert breaker.state == before

    def test_tripped_rejects_everything(self) -> None:
        """While tripped even a close candidate is rejected."""
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        breaker.trip(now=10)
        decision = breaker.evaluate(100_000_000, threshold_bps=1000)
        assert not decision.accepted
        assert decision.deviation_bps == 0


class TestCircuitBreakerTransitions:
    """Test trip and reset transitions."""

    def test_trip_keeps_reference_price(self) -> None:
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        breaker.trip(now=50)

        assert breaker.is_tripped
        assert breaker.last_accepted_price == 100_000_000
        assert breaker.state.last_transition_time == 50

    def test_repeated_trip_keeps_transition_time(self) -> None:
        breaker = CircuitBreaker()
        breaker.trip(now=50)
        breaker.trip(now=60)
        assert breaker.state.last_transition_time == 50

    def test_reset(self) -> None:
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        breaker.trip(now=50)
        breaker.reset(now=70)

        assert not breaker.is_tripped
        assert breaker.last_accepted_price == 100_000_000
        assert breaker.state.last_transition_time == 70
        assert breaker.evaluate(101_000_000, threshold_bps=1000).accepted

    def test_reset_with_reference_price(self) -> None:
        """Reset can re-anchor the reference price."""
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        breaker.trip(now=50)
        breaker.reset(now=70, reference_price=115_000_000)

        assert breaker.last_accepted_price == 115_000_000
        assert breaker.evaluate(115_000_000, threshold_bps=1000).accepted

    def test_reset_when_normal_keeps_transition_time(self) -> None:
        breaker = CircuitBreaker(CircuitBreakerState(False, 100, 5))
        breaker.reset(now=70)
        assert breaker.state == CircuitBreakerState(False, 100, 5)

    def test_no_automatic_recovery(self) -> None:
        """The breaker stays tripped however much time passes."""
        breaker = CircuitBreaker()
        breaker.accept(100_000_000)
        breaker.trip(now=1)
        for _ in range(3):
            assert not breaker.evaluate(100_000_000, threshold_bps=1000).accepted
        assert breaker.is_tripped
