#!/usr/bin/env python3
"""Command-line entry point for Madgwick orientation fusion.

Streams IMU readings from a recording or a synthetic IMU through the
orientation estimator and writes JSON-formatted orientation lines to
stdout.
"""

import argparse
import json
import logging
import signal
import sys
from typing import List, Optional

import numpy as np

from .core import Config, ImuReading, load_config
from .fusion import OrientationEstimator
from .monitoring import PerformanceMonitor
from .sources import ImuSource, RecordingSource, SourceError, SyntheticImu, capture

logger = logging.getLogger(__name__)

SHUTDOWN_REQUESTED = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global SHUTDOWN_REQUESTED
    SHUTDOWN_REQUESTED = True
    logger.info("Shutdown requested")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def collect_alignment(source: ImuSource, count: int) -> List[ImuReading]:
    """Read ``count`` readings for initial alignment, fewer if the source ends."""
    samples = []
    for _ in range(count):
        reading = source.read_measurement(timeout_s=0.5)
        if reading is None:
            break
        samples.append(reading)
    return samples


def align(estimator: OrientationEstimator, samples: List[ImuReading]) -> bool:
    """Initialize the estimator orientation from stationary samples."""
    acc = np.array([r.acc for r in samples if r.has_acc])
    mag = np.array([r.mag for r in samples if r.has_mag])
    gyr = np.array([r.gyr for r in samples])
    try:
        estimator.initialize(acc, mag if len(mag) == len(acc) else None, gyr)
    except ValueError as e:
        logger.warning("Initial alignment skipped: %s", e)
        return False
    return True


def run_fusion_loop(
    config: Config,
    source: ImuSource,
    max_samples: Optional[int] = None,
    stream=None,
) -> int:
    """Run readings from ``source`` through the estimator.

    Args:
        config: System configuration.
        source: Reading source; the loop ends when it returns None.
        max_samples: Stop after this many readings.
        stream: Output stream for JSON lines, stdout if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    out = stream if stream is not None else sys.stdout
    estimator = OrientationEstimator(config)
    monitor = PerformanceMonitor(config)

    emit_interval = 1.0 / config.output.emit_rate_hz if config.output.emit_rate_hz > 0 else 0.0
    last_emit: Optional[float] = None
    processed = 0
    emitted = 0

    try:
        init_samples = collect_alignment(source, config.initialization.min_samples)
        align(estimator, init_samples)

        while not SHUTDOWN_REQUESTED:
            if max_samples is not None and processed >= max_samples:
                break

            monitor.start_iteration()
            reading = source.read_measurement(timeout_s=0.5)
            if reading is None:
                break
            processed += 1

            result = estimator.update(reading)
            if result is None:
                continue

            monitor.end_iteration(reading.timestamp)

            if last_emit is None or reading.timestamp - last_emit >= emit_interval:
                output = result.to_dict()
                output["timestamp"] = reading.timestamp
                out.write(json.dumps(output) + "\n")
                out.flush()
                last_emit = reading.timestamp
                emitted += 1

    except SourceError as e:
        logger.error("Source error: %s", e)
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")

    finally:
        stats = monitor.get_stats()
        health = estimator.health

        logger.info("Final statistics:")
        logger.info("  Readings: %d processed, %d emitted", processed, emitted)
        logger.info("  Effective rate: %.1f Hz", stats.effective_rate_hz)
        logger.info("  Rejected readings: %d", health.rejected_readings)
        logger.info("  Dropped reference samples: %d", health.dropped_references)
        logger.info("  Filter resets: %d", health.reset_count)

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Madgwick orientation fusion for IMU and MARG sensors"
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--replay",
        type=str,
        metavar="FILE",
        help="Replay a JSON recording",
    )
    source.add_argument(
        "--synthetic",
        action="store_true",
        help="Use a synthetic IMU (default)",
    )
    parser.add_argument(
        "-n", "--samples",
        type=int,
        default=None,
        help="Number of readings to process (synthetic default: 2000)",
    )
    parser.add_argument(
        "--body-rate",
        type=float,
        nargs=3,
        default=(0.0, 0.0, 0.0),
        metavar=("X", "Y", "Z"),
        help="Synthetic body rate in deg/s",
    )
    parser.add_argument(
        "--gyro-bias",
        type=float,
        nargs=3,
        default=(0.0, 0.0, 0.0),
        metavar=("X", "Y", "Z"),
        help="Synthetic gyroscope bias in deg/s",
    )
    parser.add_argument(
        "--no-mag",
        action="store_true",
        help="Synthetic IMU without magnetometer",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Synthetic noise seed",
    )
    parser.add_argument(
        "--record",
        type=str,
        metavar="OUT",
        help="Save the synthetic readings to a JSON recording",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Application entry point.

    Returns:
        Exit code.
    """
    args = build_parser().parse_args(argv)

    setup_logging(verbose=args.verbose)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except (ValueError, TypeError) as e:
        logger.error("Failed to load configuration: %s", e)
        return 1

    if args.replay:
        try:
            source = RecordingSource.from_file(args.replay)
        except (FileNotFoundError, SourceError) as e:
            logger.error("Failed to load recording: %s", e)
            return 1
        return run_fusion_loop(config, source, max_samples=args.samples)

    samples = args.samples if args.samples is not None else 2000
    imu = SyntheticImu(
        sample_rate_hz=config.filter.sample_rate_hz,
        body_rate=np.radians(args.body_rate),
        gyro_bias=np.radians(args.gyro_bias),
        acc_noise=0.05,
        gyr_noise=np.radians(0.1),
        mag_noise=0.2,
        include_mag=not args.no_mag,
        seed=args.seed,
    )

    with imu:
        if args.record:
            recording = capture(
                imu, samples + config.initialization.min_samples,
                config.filter.sample_rate_hz, description="synthetic",
            )
            recording.save(args.record)
            return run_fusion_loop(config, RecordingSource(recording))
        return run_fusion_loop(config, imu, max_samples=samples)


if __name__ == "__main__":
    sys.exit(main())
