from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np
import soundfile as sf

LOG = logging.getLogger(__name__)

# librtlsdr's default synchronous transfer length (16 * 32 * 512 bytes).
DEFAULT_BLOCK_SIZE = 262_144

_WAV_SUFFIXES = {".wav", ".wave", ".rf64"}


class SourceError(OSError):
    """Raised when a radio source cannot be opened or used."""


@dataclass(slots=True, frozen=True)
class CapturePlan:
    capture_freq: int
    capture_rate: int
    downsample: int


def plan_capture(freq: int, rate: int) -> CapturePlan:
    """Pick tuner settings for a wanted frequency and sample rate.

    The capture rate is an integer multiple of ``rate`` that clears 1 MS/s, and
    the tuner is offset by a quarter of it to keep the DC spike off the target.
    """
    if freq <= 0 or rate <= 0:
        raise ValueError("Frequency and sample rate must be positive.")
    downsample = 1_000_000 // rate + 1
    LOG.info("downsample: %d", downsample)
    capture_rate = downsample * rate
    LOG.info("rate_in: %d capture_rate: %d", rate, capture_rate)
    capture_freq = freq + capture_rate // 4
    LOG.info("capture_freq: %d", capture_freq)
    return CapturePlan(capture_freq=capture_freq, capture_rate=capture_rate, downsample=downsample)


class RadioSource(Protocol):
    block_size: int
    live: bool
    total_blocks: int | None

    def open(self) -> None: ...

    def configure(self, center_freq: int, sample_rate: int) -> None: ...

    def read_block(self) -> bytes: ...

    def close(self) -> None: ...


class RtlSdrSource:
    """Blocking fixed-size reads from an RTL-SDR dongle through pyrtlsdr."""

    live = True

    def __init__(self, device_index: int = 0, block_size: int = DEFAULT_BLOCK_SIZE):
        self.device_index = device_index
        self.block_size = block_size
        self.total_blocks: int | None = None
        self._sdr = None

    def open(self) -> None:
        if self._sdr is not None:
            return
        # Importing rtlsdr loads librtlsdr, so defer it until a device is wanted.
        try:
            from rtlsdr import RtlSdr
        except ImportError as exc:
            raise SourceError(f"librtlsdr is not available: {exc}") from exc

        try:
            self._sdr = RtlSdr(device_index=self.device_index)
        except (OSError, IndexError) as exc:
            raise SourceError(f"Failed to open RTL-SDR device {self.device_index}: {exc}") from exc

    def configure(self, center_freq: int, sample_rate: int) -> None:
        sdr = self._require_open()
        try:
            sdr.gain = "auto"
            sdr.set_bias_tee(False)
            sdr.center_freq = int(center_freq)
            sdr.sample_rate = int(sample_rate)
        except OSError as exc:
            raise SourceError(f"Failed to tune RTL-SDR device {self.device_index}: {exc}") from exc

        LOG.info("Tuned to %d Hz.", int(sdr.center_freq))
        LOG.info("Buffer size: %.2fms", 1000.0 * 0.5 * self.block_size / float(sample_rate))
        LOG.info("Sampling at %d S/s", int(sdr.sample_rate))
        LOG.info("Reading samples in sync mode...")

    def read_block(self) -> bytes:
        return bytes(self._require_open().read_bytes(self.block_size))

    def close(self) -> None:
        if self._sdr is not None:
            self._sdr.close()
            self._sdr = None

    def _require_open(self):
        if self._sdr is None:
            raise SourceError("RTL-SDR device has not been opened.")
        return self._sdr


class FileSource:
    """Replay a cu8 or WAV I/Q recording as if it were a live radio."""

    live = False

    def __init__(self, path: Path, block_size: int = DEFAULT_BLOCK_SIZE):
        if block_size <= 0 or block_size % 2:
            raise ValueError("block_size must be a positive, even number of bytes.")
        self.path = Path(path)
        self.block_size = block_size
        self._raw: io.BufferedReader | None = None
        self._wav: sf.SoundFile | None = None

    def open(self) -> None:
        if self._raw is not None or self._wav is not None:
            return
        if not self.path.is_file():
            raise SourceError(f"No such recording: {self.path}")
        if self.path.suffix.lower() in _WAV_SUFFIXES:
            try:
                handle = sf.SoundFile(self.path)
            except RuntimeError as exc:
                raise SourceError(f"Unable to read {self.path}: {exc}") from exc
            if handle.channels != 2:
                handle.close()
                raise SourceError(
                    f"{self.path} has {handle.channels} channel(s); I/Q recordings need 2."
                )
            self._wav = handle
        else:
            self._raw = self.path.open("rb")
        LOG.info("Replaying %s", self.path)

    @property
    def total_blocks(self) -> int | None:
        if self._wav is not None:
            return (self._wav.frames * 2) // self.block_size
        if self._raw is not None:
            return self.path.stat().st_size // self.block_size
        return None

    def configure(self, center_freq: int, sample_rate: int) -> None:
        if self._wav is not None and int(self._wav.samplerate) != int(sample_rate):
            LOG.warning(
                "Recording sample rate %d S/s differs from configured %d S/s.",
                self._wav.samplerate,
                sample_rate,
            )
        LOG.info("Replay labelled as %d Hz at %d S/s", center_freq, sample_rate)

    def read_block(self) -> bytes:
        if self._raw is not None:
            return self._raw.read(self.block_size)
        if self._wav is not None:
            try:
                frames = self._wav.read(self.block_size // 2, dtype="float32", always_2d=True)
            except RuntimeError as exc:
                raise SourceError(f"Unable to read {self.path}: {exc}") from exc
            return _float_iq_to_cu8(frames)
        raise SourceError("Recording has not been opened.")

    def close(self) -> None:
        if self._raw is not None:
            self._raw.close()
            self._raw = None
        if self._wav is not None:
            self._wav.close()
            self._wav = None


def _float_iq_to_cu8(frames: np.ndarray) -> bytes:
    scaled = np.round(frames.reshape(-1).astype(np.float64) * 128.0 + 128.0)
    return np.clip(scaled, 0, 255).astype(np.uint8).tobytes()


__all__ = [
    "CapturePlan",
    "DEFAULT_BLOCK_SIZE",
    "FileSource",
    "RadioSource",
    "RtlSdrSource",
    "SourceError",
    "plan_capture",
]
