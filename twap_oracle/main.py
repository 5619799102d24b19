#!/usr/bin/env python3
"""TWAP Price Oracle.

Replays recorded update cycles through an oracle engine and reports the
published price, its validity and the TWAP. Engine state can be loaded from
and saved to a JSON state file so successive runs resume where the last one
stopped.

Cycles file format (JSON list):
    [{"timestamp": 1700000000,
      "samples": [{"source_id": "a", "price": "100.5", "weight": 100}, ...]},
     ...]

Prices given as strings are decimal; integers are already scaled by 10^8.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from .src.errors import OracleError
from .src.FixedPointMath import from_fixed, to_fixed
from .src.models import Sample
from .src.OracleEngine import OracleEngine
from .src.OracleParameters import OracleParameters
from .src.TwapHistory import DEFAULT_CAPACITY

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_price(value: Any) -> int:
    """Parse a price from the cycles file into its scaled integer form.

    :param value: Decimal string, float or pre-scaled integer.
    :returns: Price scaled by 10^8.
    :raises ValueError: If the value is not a valid price.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid price value {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Invalid price value {value!r}")
        return value
    return to_fixed(str(value))


def parse_cycles(raw: Any) -> list[tuple[int | None, list[Sample]]]:
    """Parse the cycles file contents.

    :param raw: Decoded JSON.
    :returns: List of (timestamp, samples) tuples.
    :raises ValueError: If the structure is invalid.
    """
    if not isinstance(raw, list):
        raise ValueError("Cycles file must contain a JSON list")

    cycles = []
    for i, cycle in enumerate(raw):
        try:
            timestamp = cycle.get("timestamp")
            samples = [
                Sample(
                    source_id=str(s["source_id"]),
                    price=parse_price(s["price"]),
                    weight=int(s.get("weight", 1)),
                )
                for s in cycle["samples"]
            ]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid cycle #{i}: {e}") from e
        cycles.append((None if timestamp is None else int(timestamp), samples))
    return cycles


def env_int(name: str) -> int | None:
    value = os.environ.get(name)
    return int(value) if value else None


def load_engine(
    state_file: Path | None, overrides: dict[str, int], history_size: int | None
) -> OracleEngine:
    """Create an engine, restoring it from the state file if one exists.

    :param overrides: Parameters given on the command line or in the
        environment. They win over the restored ones.
    :param history_size: Ring capacity for a new engine (None for the default).
    """
    if state_file is not None and state_file.exists():
        logger.info(f"Loading engine state from {state_file}")
        with open(state_file, "r") as f:
            engine = OracleEngine.from_snapshot(json.load(f))
        if overrides:
            engine.set_parameters(**overrides)
        if history_size is not None and history_size != engine.history.capacity:
            logger.warning(
                f"Ignoring history size {history_size}: restored history has capacity "
                f"{engine.history.capacity}"
            )
        return engine

    return OracleEngine(
        OracleParameters(**overrides), history_size=history_size or DEFAULT_CAPACITY
    )


def save_engine(engine: OracleEngine, state_file: Path) -> None:
    with open(state_file, "w") as f:
        json.dump(engine.snapshot(), f, indent=2)
    logger.info(f"Engine state saved to {state_file}")


def run_cycles(engine: OracleEngine, cycles: list[tuple[int | None, list[Sample]]]) -> dict[str, int]:
    """Feed every cycle to the engine, logging failures and continuing.

    :returns: Counts of accepted, rejected and failed cycles.
    """
    counts = {"accepted": 0, "rejected": 0, "failed": 0}
    for timestamp, samples in cycles:
        try:
            result = engine.run_update_cycle(samples, now=timestamp)
        except OracleError as e:
            counts["failed"] += 1
            logger.warning(f"Cycle at {timestamp} failed: {e}")
            continue
        counts["accepted" if result.accepted else "rejected"] += 1
    return counts


def main() -> None:
    """Main entry point for the TWAP Price Oracle CLI."""
    parser = argparse.ArgumentParser(
        description="TWAP Price Oracle: replay update cycles through the aggregation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replay recorded cycles with default parameters
  python -m twap_oracle.main --cycles cycles.json

  # Resume from a saved state and persist the result
  python -m twap_oracle.main --cycles cycles.json --state state.json

Environment variables (CLI args take precedence):
  MIN_SOURCES, DEVIATION_THRESHOLD_BPS, BREAKER_THRESHOLD_BPS, MAX_PRICE_AGE,
  TWAP_PERIOD, HISTORY_SIZE, STATE_FILE
""",
    )

    parser.add_argument(
        "--cycles",
        type=Path,
        required=True,
        help="JSON file with the update cycles to replay",
    )

    parser.add_argument(
        "--state",
        type=Path,
        help="JSON engine state file, loaded if present and saved afterwards",
        default=os.environ.get("STATE_FILE"),
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum sources required for a valid update cycle (default: 2)",
        default=env_int("MIN_SOURCES"),
    )

    parser.add_argument(
        "--deviation-threshold",
        dest="deviation_threshold",
        type=int,
        help="Max deviation from median in bps before excluding a source (default: 500)",
        default=env_int("DEVIATION_THRESHOLD_BPS"),
    )

    parser.add_argument(
        "--breaker-threshold",
        dest="breaker_threshold",
        type=int,
        help="Max jump vs last accepted price in bps before tripping (default: 1000)",
        default=env_int("BREAKER_THRESHOLD_BPS"),
    )

    parser.add_argument(
        "--max-price-age",
        dest="max_price_age",
        type=int,
        help="Seconds after which the published price is stale (default: 3600)",
        default=env_int("MAX_PRICE_AGE"),
    )

    parser.add_argument(
        "--twap-period",
        dest="twap_period",
        type=int,
        help="Default TWAP window in seconds (default: 1800)",
        default=env_int("TWAP_PERIOD"),
    )

    parser.add_argument(
        "--history-size",
        dest="history_size",
        type=int,
        help="Capacity of the TWAP history ring (default: 120)",
        default=env_int("HISTORY_SIZE"),
    )

    parser.add_argument(
        "--window",
        type=int,
        help="TWAP window to report in seconds (default: the TWAP period)",
        default=0,
    )

    parser.add_argument(
        "--now",
        type=int,
        help="Time to evaluate reads at (default: last cycle timestamp)",
        default=None,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.history_size is not None and args.history_size < 1:
        parser.error("--history-size must be at least 1")

    # Only parameters set explicitly override a restored state
    overrides = {
        name: value
        for name, value in {
            "price_deviation_threshold_bps": args.deviation_threshold,
            "circuit_breaker_threshold_bps": args.breaker_threshold,
            "max_price_age": args.max_price_age,
            "twap_period": args.twap_period,
            "min_sources_required": args.min_sources,
        }.items()
        if value is not None
    }
    try:
        OracleParameters(**overrides)
    except OracleError as e:
        parser.error(str(e))

    try:
        with open(args.cycles, "r") as f:
            cycles = parse_cycles(json.load(f))

        engine = load_engine(args.state, overrides, args.history_size)
        counts = run_cycles(engine, cycles)

        now = args.now
        if now is None:
            timestamps = [t for t, _ in cycles if t is not None]
            now = timestamps[-1] if timestamps else None

        price, is_valid = engine.latest_with_validity(now)
        twap = engine.query_twap(args.window, now)

        logger.info("=" * 60)
        logger.info(f"Cycles:            {len(cycles)} ({counts['accepted']} accepted, "
                    f"{counts['rejected']} rejected, {counts['failed']} failed)")
        logger.info(f"Latest price:      {from_fixed(price)} ({'valid' if is_valid else 'invalid'})")
        logger.info(f"TWAP:              {from_fixed(twap)}")
        logger.info(f"Circuit breaker:   {'TRIPPED' if engine.breaker_state.is_tripped else 'normal'}")
        logger.info("=" * 60)

        if args.state is not None:
            save_engine(engine, args.state)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
