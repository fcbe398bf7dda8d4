from __future__ import annotations

from typing import Optional

from tqdm import tqdm

from .events import CaptureResult


class MonitorSink:
    """Interface for receiving per-block pipeline activity."""

    def start(self, *, total_blocks: Optional[int]) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def block(self, hits: int, *, backlog: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def capture(self, result: CaptureResult) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class NullMonitorSink(MonitorSink):
    """Sink that ignores all activity."""

    def start(self, *, total_blocks: Optional[int]) -> None:
        return

    def block(self, hits: int, *, backlog: int) -> None:
        return

    def capture(self, result: CaptureResult) -> None:
        return

    def close(self) -> None:
        return


class TqdmMonitorSink(MonitorSink):
    """Live block counter with capture and backlog figures in the postfix."""

    def __init__(self):
        self._bar: Optional[tqdm] = None
        self._captures = 0
        self._hit_blocks = 0

    def start(self, *, total_blocks: Optional[int]) -> None:
        self._bar = tqdm(total=total_blocks, desc="Scanning", unit="blk", leave=True)

    def block(self, hits: int, *, backlog: int) -> None:
        if self._bar is None:
            return
        if hits:
            self._hit_blocks += 1
        self._bar.update(1)
        self._bar.set_postfix(
            captures=self._captures,
            active=self._hit_blocks,
            backlog=backlog,
            refresh=False,
        )

    def capture(self, result: CaptureResult) -> None:
        self._captures += 1
        if self._bar is not None:
            self._bar.write(
                f"Captured {result.blocks} blocks ({result.events} events) -> {result.path.name}"
            )

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
