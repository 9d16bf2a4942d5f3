"""
Replay a JSON-lines recording through the LocationEngine.

Each line is one record:
    {"type": "location", "latitude": .., "longitude": .., "accuracy": .., "timestamp": .., ...}
    {"type": "sensor", "sensor": "accelerometer", "x": .., "y": .., "z": .., "timestamp": ..}

The engine clock follows the record timestamps. A fusion cycle runs after
every location record and motion analysis runs every analysis interval of
recording time. Fused locations are printed as JSON lines.

Usage:
    fusion-replay drive.jsonl --config engine.json --predict 5 --debug
"""

import argparse
import json
import logging
import math
import sys
from typing import Iterator, List, Optional, TextIO

from fusion_core.config import EngineConfig, configure_logging
from fusion_core.domain import LocationEngine
from fusion_core.proto.raw_sample import RawSample
from fusion_core.proto.sensor_sample import SensorSample

logger = logging.getLogger(__name__)


class ReplayClock:
    """Clock that only moves when the replay advances it."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_to(self, timestamp: float):
        self.now = max(self.now, timestamp)


def record_timestamp(record) -> Optional[float]:
    """Finite timestamp of a record, or None when it is missing or not a number."""
    if not isinstance(record, dict):
        return None
    try:
        timestamp = float(record['timestamp'])
    except (KeyError, TypeError, ValueError):
        return None
    return timestamp if math.isfinite(timestamp) else None


def read_records(stream: TextIO) -> Iterator[dict]:
    """Yield parsed records, skipping blank and malformed lines."""
    for line_number, line in enumerate(stream, start=1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Line {line_number}: invalid JSON ({e})")
            continue
        if record_timestamp(record) is None:
            logger.warning(f"Line {line_number}: record without a numeric timestamp")
            continue
        yield record


def replay(
    records: List[dict],
    config: Optional[EngineConfig] = None,
    output: Optional[TextIO] = None,
) -> LocationEngine:
    """
    Feed records through a LocationEngine in timestamp order.

    Args:
        records: Parsed location / sensor records
        config: Engine configuration (defaults if None)
        output: Where fused locations are written (default: stdout)

    Returns:
        The engine, for metrics and prediction queries
    """
    if output is None:
        output = sys.stdout
    timed = []
    for record in records:
        timestamp = record_timestamp(record)
        if timestamp is None:
            logger.warning(f"Skipping record without a numeric timestamp: {record!r}")
            continue
        timed.append((timestamp, record))
    timed.sort(key=lambda pair: pair[0])

    clock = ReplayClock(timed[0][0] if timed else 0.0)
    engine = LocationEngine(config, clock=clock)
    engine.initialize()

    engine.location_stream.subscribe(
        lambda fused: output.write(json.dumps(fused.to_dict()) + '\n')
    )
    engine.motion_state_stream.subscribe(
        lambda t: logger.info(
            f"t={t.timestamp:.1f} motion {t.from_state.value} -> {t.to_state.value} "
            f"({t.confidence:.2f})"
        )
    )

    analysis_interval = engine.config.motion.analysis_interval_s
    next_analysis = clock() + analysis_interval

    for timestamp, record in timed:
        clock.advance_to(timestamp)
        kind = record.get('type', 'location')

        try:
            if kind == 'location':
                engine.on_raw_sample(RawSample.from_dict(record))
                engine.run_fusion_cycle()
            elif kind == 'sensor':
                engine.on_sensor_sample(SensorSample.from_dict(record))
            else:
                logger.warning(f"Unknown record type '{kind}'")
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping record at t={timestamp}: {e}")

        if clock() >= next_analysis:
            engine.run_motion_analysis()
            next_analysis = clock() + analysis_interval

    return engine


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the fusion-replay command."""
    parser = argparse.ArgumentParser(description='Replay recorded samples through the fusion core')
    parser.add_argument('recording', type=str,
                        help='JSON-lines recording ("-" for stdin)')
    parser.add_argument('--config', '-c', type=str, default=None,
                        help='JSON engine configuration file')
    parser.add_argument('--predict', '-p', type=float, default=None,
                        help='Print the predicted location this many seconds after the last fix')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    configure_logging('DEBUG' if args.debug else None)

    config = None
    if args.config:
        with open(args.config, 'r', encoding='utf-8') as f:
            config = EngineConfig.from_dict(json.load(f))

    if args.recording == '-':
        records = list(read_records(sys.stdin))
    else:
        with open(args.recording, 'r', encoding='utf-8') as f:
            records = list(read_records(f))

    if not records:
        logger.error(f"No records in {args.recording}")
        return 1

    engine = replay(records, config)

    if args.predict is not None:
        predicted = engine.predict_location(args.predict)
        if predicted is None:
            print("No prediction (fewer than 2 fused locations)")
        else:
            print(json.dumps({'prediction': predicted.to_dict()}))

    quality = engine.get_quality_metrics()
    motion = engine.get_current_motion()
    print("=" * 70)
    print(f"  Fused locations : {quality.location_count}")
    print(f"  Outlier rate    : {quality.outlier_rate * 100:.1f}%")
    print(f"  Confidence      : {quality.fusion_confidence:.2f}")
    print(f"  Motion state    : {motion.motion_state.display_name} ({motion.confidence:.2f})")
    for line in engine.get_metrics().accounting.report_lines():
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
