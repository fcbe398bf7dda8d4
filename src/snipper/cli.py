from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from pathlib import Path

from . import __version__
from .events import DetectorConfig
from .pipeline import CaptureError, PipelineConfig, ShutdownSignal, SnipperPipeline
from .progress import MonitorSink, TqdmMonitorSink
from .radio import DEFAULT_BLOCK_SIZE, CapturePlan, FileSource, RtlSdrSource, SourceError, plan_capture
from .sink import FileCaptureSink
from .utils import parse_frequency_text

LOG = logging.getLogger("snipper")

DEFAULT_FREQUENCY = 434_200_000
DEFAULT_SAMPLE_RATE = 2_880_000


def frequency(value: str) -> int:
    parsed = parse_frequency_text(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"Expected a positive frequency such as 434.2M, got {value!r}.")
    return parsed


def positive_int(value: str) -> int:
    try:
        val = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    if val <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer.")
    return val


def positive_float(value: str) -> float:
    try:
        val = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    if val <= 0:
        raise argparse.ArgumentTypeError("Expected a positive value.")
    return val


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Watch an RTL-SDR for narrowband bursts and save each one as a .cu8 recording.",
    )
    parser.add_argument(
        "--freq",
        dest="frequency",
        type=frequency,
        default=DEFAULT_FREQUENCY,
        help="Frequency of interest in Hz; accepts k/M/G suffixes (default: 434.2M).",
    )
    parser.add_argument(
        "--rate",
        dest="sample_rate",
        type=frequency,
        default=DEFAULT_SAMPLE_RATE,
        help="Wanted sample rate in S/s; accepts k/M suffixes (default: 2.88M).",
    )
    parser.add_argument(
        "--device",
        dest="device_index",
        type=int,
        default=0,
        help="RTL-SDR device index (default: 0).",
    )
    parser.add_argument(
        "--replay",
        dest="replay_path",
        type=Path,
        help="Scan a .cu8 or WAV I/Q recording instead of a live device.",
    )
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        type=Path,
        default=Path("."),
        help="Directory for captured bursts (default: current directory).",
    )
    parser.add_argument(
        "--window",
        dest="window_width",
        type=positive_int,
        default=128,
        help="FFT width in I/Q pairs per analysis window (default: 128).",
    )
    parser.add_argument(
        "--block-size",
        dest="block_size",
        type=positive_int,
        default=DEFAULT_BLOCK_SIZE,
        help=f"Bytes per radio read; must be a multiple of 2*window (default: {DEFAULT_BLOCK_SIZE}).",
    )
    parser.add_argument(
        "--threshold",
        dest="threshold",
        type=positive_float,
        default=3.0,
        help="95th/75th percentile ratio above which a window is interesting (default: 3.0).",
    )
    parser.add_argument(
        "--gap",
        dest="gap_blocks",
        type=positive_int,
        default=15,
        help="Quiet blocks that end a burst (default: 15).",
    )
    parser.add_argument(
        "--min-events",
        dest="min_events",
        type=int,
        default=2,
        help="A burst is saved when more than this many blocks are events (default: 2).",
    )
    parser.add_argument(
        "--event-hits",
        dest="event_hits",
        type=int,
        default=1,
        help="A block is an event when more than this many windows are interesting (default: 1).",
    )
    parser.add_argument(
        "--max-queue",
        dest="max_queue_blocks",
        type=positive_int,
        help="Bound the receive queue to this many blocks; the receiver waits when full (default: unbounded).",
    )
    parser.add_argument(
        "--queue-warn",
        dest="queue_warn_blocks",
        type=int,
        default=64,
        help="Warn when this many blocks are waiting to be processed; 0 disables (default: 64).",
    )
    parser.add_argument(
        "--progress",
        dest="progress",
        action="store_true",
        help="Show a live block counter.",
    )
    parser.add_argument(
        "--debug-spectra",
        dest="debug_spectra",
        action="store_true",
        help="Log percentile statistics and a sparkline for every analysis window.",
    )
    parser.add_argument(
        "--verbose",
        dest="verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=__version__,
        help="Print the snipper version and exit.",
    )
    return parser


def install_shutdown_handlers(shutdown: ShutdownSignal) -> dict[int, object]:
    """Route SIGINT/SIGTERM to ``shutdown``; a second signal exits on the spot."""

    def _handler(signum: int, _frame) -> None:
        if not shutdown.request():
            LOG.info("Shutdown already requested, exiting immediately.")
            os._exit(1)
        LOG.info("%s received, stopping after the current block.", signal.Signals(signum).name)

    previous: dict[int, object] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    return previous


def restore_handlers(previous: dict[int, object]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.debug_spectra:
        logging.getLogger("snipper.interest").setLevel(logging.DEBUG)

    detector = DetectorConfig(
        threshold=args.threshold,
        gap_blocks=args.gap_blocks,
        min_events=args.min_events,
        event_hits=args.event_hits,
    )
    config = PipelineConfig(
        window_width=args.window_width,
        block_size=args.block_size,
        detector=detector,
        max_queue_blocks=args.max_queue_blocks,
        queue_warn_blocks=args.queue_warn_blocks,
        debug_spectra=args.debug_spectra,
    )
    try:
        config.validate()
    except ValueError as exc:
        parser.error(str(exc))

    if args.replay_path is not None:
        # A recording already carries its tuning; label captures with it as given.
        plan = CapturePlan(capture_freq=args.frequency, capture_rate=args.sample_rate, downsample=1)
        source = FileSource(args.replay_path, block_size=args.block_size)
    else:
        plan = plan_capture(args.frequency, args.sample_rate)
        source = RtlSdrSource(args.device_index, block_size=args.block_size)

    sink = FileCaptureSink(args.output_dir, plan.capture_freq, plan.capture_rate)
    monitor: MonitorSink | None = TqdmMonitorSink() if args.progress else None
    shutdown = ShutdownSignal()
    pipeline = SnipperPipeline(source, sink, config, shutdown=shutdown, monitor=monitor)

    previous = install_shutdown_handlers(shutdown)
    try:
        result = pipeline.run(plan.capture_freq, plan.capture_rate)
    except SourceError as exc:
        LOG.error("Unable to start receiver: %s", exc)
        return 1
    except CaptureError as exc:
        LOG.error("%s", exc)
        if args.verbose:
            LOG.exception("Debug traceback")
        return 1
    finally:
        restore_handlers(previous)

    for capture in result.stats.captures:
        print(f"{capture.path} ({capture.blocks} blocks, {capture.events} events, {capture.bytes_written} bytes)")
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
