from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

LOG = logging.getLogger(__name__)

CAPTURE_PREFIX = "snipper"
CAPTURE_SUFFIX = ".cu8"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """RFC 3339 UTC timestamp with ``:`` swapped for ``_`` so it is filename-safe."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
    return stamp.replace("+00:00", "Z").replace(":", "_")


def capture_filename(moment: datetime, capture_freq: int, capture_rate: int) -> str:
    return f"{CAPTURE_PREFIX}_{format_timestamp(moment)}_{int(capture_freq)}_{int(capture_rate)}{CAPTURE_SUFFIX}"


class CaptureSink(Protocol):
    def write_capture(self, blocks: Iterable[bytes]) -> Path: ...


class FileCaptureSink:
    """Persist flushed bursts as headerless ``.cu8`` files in ``directory``."""

    def __init__(
        self,
        directory: Path,
        capture_freq: int,
        capture_rate: int,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.directory = Path(directory)
        self.capture_freq = int(capture_freq)
        self.capture_rate = int(capture_rate)
        self._clock = clock

    def write_capture(self, blocks: Iterable[bytes]) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / capture_filename(self._clock(), self.capture_freq, self.capture_rate)
        LOG.info("Writing output to %s", path.name)
        with path.open("wb") as handle:
            for block in blocks:
                handle.write(block)
            handle.flush()
            os.fsync(handle.fileno())
        return path


__all__ = [
    "CAPTURE_PREFIX",
    "CAPTURE_SUFFIX",
    "CaptureSink",
    "FileCaptureSink",
    "capture_filename",
    "format_timestamp",
]
