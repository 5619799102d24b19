"""Unit tests for the CLI entry point."""

import json
from unittest.mock import patch

import pytest

from twap_oracle.main import load_engine, main, parse_cycles, parse_price, run_cycles
from twap_oracle.src.OracleEngine import OracleEngine
from twap_oracle.src.OracleParameters import OracleParameters

T0 = 1_700_000_000


def _cycle(timestamp: int, *prices: object) -> dict:
    return {
        "timestamp": timestamp,
        "samples": [
            {"source_id": f"src{i}", "price": p, "weight": 100} for i, p in enumerate(prices)
        ],
    }


class TestParsing:
    """Test cycles file parsing."""

    def test_parse_price(self) -> None:
        assert parse_price("100.5") == 10_050_000_000
        assert parse_price(10_050_000_000) == 10_050_000_000
        assert parse_price(1.5) == 150_000_000

    def test_parse_price_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_price(-1)
        with pytest.raises(ValueError):
            parse_price(True)
        with pytest.raises(ValueError):
            parse_price("abc")

    def test_parse_cycles(self) -> None:
        cycles = parse_cycles([_cycle(T0, "100", "101")])
        timestamp, samples = cycles[0]
        assert timestamp == T0
        assert [s.price for s in samples] == [10_000_000_000, 10_100_000_000]
        assert samples[0].weight == 100

    def test_parse_cycles_not_a_list(self) -> None:
        with pytest.raises(ValueError, match="JSON list"):
            parse_cycles({"timestamp": T0})

    def test_parse_cycles_missing_samples(self) -> None:
        with pytest.raises(ValueError, match="Invalid cycle #0"):
            parse_cycles([{"timestamp": T0}])


class TestRunCycles:
    """Test replaying cycles."""

    def test_counts(self) -> None:
        engine = OracleEngine(OracleParameters())
        cycles = parse_cycles([
            _cycle(T0, "100", "100"),
            _cycle(T0 + 60, "100"),  # insufficient sources
            _cycle(T0 + 120, "100", "200"),  # no valid prices
            _cycle(T0 + 180, "150", "150"),  # breaker trips
        ])
        assert run_cycles(engine, cycles) == {"accepted": 1, "rejected": 1, "failed": 2}


class TestMain:
    """Test the CLI end to end."""

    def test_main_saves_and_resumes_state(self, tmp_path) -> None:
        cycles_file = tmp_path / "cycles.json"
        state_file = tmp_path / "state.json"
        cycles_file.write_text(json.dumps([_cycle(T0, "100", "100.5", "99.8")]))

        argv = ["twap-oracle", "--cycles", str(cycles_file), "--state", str(state_file)]
        with patch("sys.argv", argv):
            main()

        state = json.loads(state_file.read_text())
        assert state["aggregate"]["price"] == 10_010_000_000

        cycles_file.write_text(json.dumps([_cycle(T0 + 60, "101", "101")]))
        with patch("sys.argv", argv):
            main()

        restored = OracleEngine.from_snapshot(json.loads(state_file.read_text()))
        assert [e.price for e in restored.history.entries()] == [10_010_000_000, 10_100_000_000]

    def test_main_bad_file_exits(self, tmp_path) -> None:
        cycles_file = tmp_path / "cycles.json"
        cycles_file.write_text("{not json")

        with patch("sys.argv", ["twap-oracle", "--cycles", str(cycles_file)]):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1

    def test_main_invalid_parameters(self, tmp_path) -> None:
        cycles_file = tmp_path / "cycles.json"
        cycles_file.write_text("[]")

        argv = ["twap-oracle", "--cycles", str(cycles_file), "--min-sources", "0"]
        with patch("sys.argv", argv):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 2

    def test_explicit_parameters_override_saved_state(self, tmp_path) -> None:
        cycles_file = tmp_path / "cycles.json"
        state_file = tmp_path / "state.json"
        cycles_file.write_text(json.dumps([_cycle(T0, "100", "100")]))
        base = ["twap-oracle", "--cycles", str(cycles_file), "--state", str(state_file)]

        with patch("sys.argv", base + ["--twap-period", "900"]):
            main()
        assert json.loads(state_file.read_text())["parameters"]["twap_period"] == 900

        cycles_file.write_text(json.dumps([_cycle(T0 + 60, "100", "100")]))
        with patch("sys.argv", base + ["--max-price-age", "60"]):
            main()

        parameters = json.loads(state_file.read_text())["parameters"]
        assert parameters["max_price_age"] == 60
        assert parameters["twap_period"] == 900


class TestLoadEngine:
    """Test engine creation and restore."""

    def test_new_engine(self) -> None:
        engine = load_engine(None, {"twap_period": 600}, 5)
        assert engine.parameters.twap_period == 600
        assert engine.history.capacity == 5

    def test_new_engine_default_capacity(self) -> None:
        engine = load_engine(None, {}, None)
        assert engine.history.capacity == 120
        assert engine.parameters == OracleParameters()

    def test_restore_applies_overrides(self, tmp_path) -> None:
        state_file = tmp_path / "state.json"
        saved = OracleEngine(OracleParameters(twap_period=900, max_price_age=120), history_size=4)
        state_file.write_text(json.dumps(saved.snapshot()))

        engine = load_engine(state_file, {"max_price_age": 60}, 50)

        assert engine.parameters.max_price_age == 60
        assert engine.parameters.twap_period == 900
        assert engine.history.capacity == 4
