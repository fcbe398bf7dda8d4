from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path

from .interest import DEFAULT_THRESHOLD
from .sink import CaptureSink

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectorConfig:
    """Hysteresis settings for burst capture.

    ``gap_blocks`` quiet blocks in a row close a burst, and the burst is kept
    only if more than ``min_events`` buffered blocks carry more than
    ``event_hits`` interesting windows each.
    """

    threshold: float = DEFAULT_THRESHOLD
    gap_blocks: int = 15
    min_events: int = 2
    event_hits: int = 1

    def validate(self) -> None:
        if self.gap_blocks < 1:
            raise ValueError("gap_blocks must be at least 1.")
        if self.min_events < 0:
            raise ValueError("min_events cannot be negative.")
        if self.event_hits < 0:
            raise ValueError("event_hits cannot be negative.")


@dataclass(slots=True, frozen=True)
class ScoredBlock:
    data: bytes
    hits: int


@dataclass(slots=True, frozen=True)
class CaptureResult:
    path: Path
    blocks: int
    events: int
    bytes_written: int


class EventBuffer:
    """Rolling history of scored blocks that flushes a burst once it has gone quiet.

    Only the consumer thread may touch an instance; there is no locking.
    """

    def __init__(self, sink: CaptureSink, config: DetectorConfig | None = None):
        self.config = config or DetectorConfig()
        self.config.validate()
        self._sink = sink
        self._blocks: deque[ScoredBlock] = deque()

    def __len__(self) -> int:
        return len(self._blocks)

    @property
    def blocks(self) -> tuple[ScoredBlock, ...]:
        return tuple(self._blocks)

    def is_quiet(self) -> bool:
        """True when the last ``gap_blocks`` entries had no hits and older history exists."""
        gap = self.config.gap_blocks
        if len(self._blocks) <= gap:
            return False
        recent = itertools.islice(reversed(self._blocks), gap)
        return all(entry.hits == 0 for entry in recent)

    def event_count(self) -> int:
        return sum(1 for entry in self._blocks if entry.hits > self.config.event_hits)

    def ingest(self, data: bytes, hits: int) -> CaptureResult | None:
        was_quiet = self.is_quiet()
        if was_quiet:
            self._blocks.popleft()
        self._blocks.append(ScoredBlock(data, int(hits)))

        events = self.event_count()
        if not (was_quiet and events > self.config.min_events):
            return None
        return self._flush(events)

    def _flush(self, events: int) -> CaptureResult:
        total = len(self._blocks)
        path = self._sink.write_capture(entry.data for entry in self._blocks)
        written = sum(len(entry.data) for entry in self._blocks)
        LOG.info("Wrote %d/%d interesting chunks to file", events, total)
        self._blocks.clear()
        return CaptureResult(path=path, blocks=total, events=events, bytes_written=written)


__all__ = ["CaptureResult", "DetectorConfig", "EventBuffer", "ScoredBlock"]
