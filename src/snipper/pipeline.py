from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field

from .events import CaptureResult, DetectorConfig, EventBuffer
from .interest import InterestingnessEstimator
from .progress import MonitorSink, NullMonitorSink
from .radio import DEFAULT_BLOCK_SIZE, RadioSource
from .sink import CaptureSink
from .spectrum import SpectralAnalyzer

LOG = logging.getLogger(__name__)

_JOIN_POLL_SECONDS = 0.5


class _EndOfStream:
    """Queue marker telling the processor that no more blocks will arrive."""


EndOfStream = _EndOfStream()


class CaptureError(RuntimeError):
    """Raised when the processing thread stops on an error."""


class ShutdownSignal:
    """Cooperative stop flag shared by the receiver and processor threads."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def request(self) -> bool:
        """Set the flag. Returns False if a shutdown was already pending.

        Runs inside signal handlers, so it must not take a lock.
        """
        if self._event.is_set():
            return False
        self._event.set()
        return True

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


@dataclass(slots=True)
class PipelineConfig:
    window_width: int = 128
    block_size: int = DEFAULT_BLOCK_SIZE
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    max_queue_blocks: int | None = None  # None keeps the receive queue unbounded
    queue_warn_blocks: int = 64
    put_timeout: float = 0.5
    debug_spectra: bool = False

    def validate(self) -> None:
        if self.window_width < 2:
            raise ValueError("window_width must be at least 2.")
        window_bytes = 2 * self.window_width
        if self.block_size <= 0 or self.block_size % window_bytes:
            raise ValueError(
                f"block_size ({self.block_size}) must be a positive multiple of "
                f"2 * window_width ({window_bytes})."
            )
        if self.max_queue_blocks is not None and self.max_queue_blocks < 1:
            raise ValueError("max_queue_blocks must be at least 1 when set.")
        if self.put_timeout <= 0:
            raise ValueError("put_timeout must be positive.")
        self.detector.validate()

    @property
    def windows_per_block(self) -> int:
        return self.block_size // (2 * self.window_width)


@dataclass
class PipelineStats:
    blocks_read: int = 0
    blocks_processed: int = 0
    interesting_windows: int = 0
    peak_backlog: int = 0
    captures: list[CaptureResult] = field(default_factory=list)


@dataclass
class PipelineResult:
    stats: PipelineStats
    stop_reason: str

    @property
    def failed(self) -> bool:
        return self.stop_reason in {"read-error", "short-read"}


class SnipperPipeline:
    """Receiver and processor threads joined by a FIFO queue of raw blocks.

    The receiver performs blocking reads from the radio and enqueues each block;
    the processor scores every analysis window of a block, feeds the hit count
    to the event buffer and lets it write finished bursts to the sink. Both
    threads only look at the shutdown signal between blocks.
    """

    def __init__(
        self,
        source: RadioSource,
        sink: CaptureSink,
        config: PipelineConfig | None = None,
        *,
        shutdown: ShutdownSignal | None = None,
        monitor: MonitorSink | None = None,
    ):
        self.config = config or PipelineConfig()
        self.config.validate()
        if source.block_size != self.config.block_size:
            raise ValueError(
                f"Source block size {source.block_size} does not match configured "
                f"block size {self.config.block_size}."
            )
        self.source = source
        self.shutdown = shutdown or ShutdownSignal()
        self.analyzer = SpectralAnalyzer(self.config.window_width)
        self.estimator = InterestingnessEstimator(
            self.config.detector.threshold,
            debug=self.config.debug_spectra,
        )
        self.events = EventBuffer(sink, self.config.detector)
        self.stats = PipelineStats()
        self._monitor: MonitorSink = monitor or NullMonitorSink()
        self._queue: queue.Queue[bytes | _EndOfStream] = queue.Queue(
            maxsize=self.config.max_queue_blocks or 0
        )
        self._stop_reason = "shutdown"
        self._error: BaseException | None = None
        self._backlog_warned = False

    def run(self, center_freq: int, sample_rate: int) -> PipelineResult:
        """Open the source, run both threads until they finish and report why they stopped."""
        self.source.open()
        try:
            self.source.configure(center_freq, sample_rate)
        except BaseException:
            self.source.close()
            raise

        LOG.info(
            "Scanning %d-point windows, %d per block; threshold %.2f, gap %d blocks.",
            self.config.window_width,
            self.config.windows_per_block,
            self.config.detector.threshold,
            self.config.detector.gap_blocks,
        )
        self._monitor.start(total_blocks=self.source.total_blocks)
        receiver = threading.Thread(target=self._receive, name="SnipperReceiver", daemon=True)
        processor = threading.Thread(target=self._process, name="SnipperProcessor", daemon=True)
        try:
            receiver.start()
            processor.start()
            for worker in (processor, receiver):
                while worker.is_alive():
                    worker.join(_JOIN_POLL_SECONDS)
        finally:
            self._monitor.close()

        if self._error is not None:
            raise CaptureError(f"Processing stopped: {self._error}") from self._error

        LOG.info(
            "Pipeline stopped (%s): %d blocks read, %d processed, %d capture(s).",
            self._stop_reason,
            self.stats.blocks_read,
            self.stats.blocks_processed,
            len(self.stats.captures),
        )
        return PipelineResult(stats=self.stats, stop_reason=self._stop_reason)

    def consume(self, block: bytes) -> CaptureResult | None:
        """Score one raw block and hand it to the event buffer."""
        spectra = self.analyzer.process_block(block)
        hits = self.estimator.hits(spectra)
        self.stats.blocks_processed += 1
        self.stats.interesting_windows += hits
        result = self.events.ingest(block, hits)
        self._monitor.block(hits, backlog=self._queue.qsize())
        if result is not None:
            self.stats.captures.append(result)
            self._monitor.capture(result)
        return result

    def _receive(self) -> None:
        block_size = self.config.block_size
        try:
            while not self.shutdown.requested:
                try:
                    block = self.source.read_block()
                except OSError as exc:
                    LOG.error("Read error: %s", exc)
                    self._stop_reason = "read-error"
                    break
                except Exception:
                    LOG.exception("Receiver stopped on unexpected error")
                    self._stop_reason = "read-error"
                    break
                if len(block) < block_size:
                    if self.source.live:
                        LOG.error("Short read (%d of %d bytes), samples lost, exiting!", len(block), block_size)
                        self._stop_reason = "short-read"
                    else:
                        if block:
                            LOG.info("Dropping %d trailing bytes of a partial block.", len(block))
                        LOG.info("End of recording after %d blocks.", self.stats.blocks_read)
                        self._stop_reason = "end-of-stream"
                    break
                self.stats.blocks_read += 1
                if not self._enqueue(block):
                    break
                self._track_backlog()
        finally:
            LOG.info("Close")
            try:
                self.source.close()
            finally:
                self._enqueue(EndOfStream)

    def _process(self) -> None:
        try:
            while not self.shutdown.requested:
                item = self._queue.get()
                if item is EndOfStream:
                    break
                self.consume(item)
        except OSError as exc:
            LOG.error("Failed to write capture: %s", exc)
            self._error = exc
            self.shutdown.request()
        except Exception as exc:
            LOG.exception("Processor stopped on unexpected error")
            self._error = exc
            self.shutdown.request()

    def _enqueue(self, item: bytes | _EndOfStream) -> bool:
        while True:
            try:
                self._queue.put(item, timeout=self.config.put_timeout)
                return True
            except queue.Full:
                if self.shutdown.requested:
                    return False

    def _track_backlog(self) -> None:
        backlog = self._queue.qsize()
        if backlog > self.stats.peak_backlog:
            self.stats.peak_backlog = backlog
        limit = self.config.queue_warn_blocks
        if limit <= 0:
            return
        if backlog >= limit and not self._backlog_warned:
            LOG.warning("Processing is falling behind: %d blocks queued.", backlog)
            self._backlog_warned = True
        elif backlog < limit:
            self._backlog_warned = False


__all__ = [
    "CaptureError",
    "EndOfStream",
    "PipelineConfig",
    "PipelineResult",
    "PipelineStats",
    "ShutdownSignal",
    "SnipperPipeline",
]
