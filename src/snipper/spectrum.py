from __future__ import annotations

import logging

import numpy as np
from scipy import fft as sp_fft

LOG = logging.getLogger(__name__)

_BH_COEFFS = (0.35875, 0.48829, 0.14128, 0.01168)


def blackman_harris_window(n: int) -> np.ndarray:
    """Return the symmetric 4-term Blackman-Harris window of length ``n``."""
    if n < 2:
        raise ValueError(f"Blackman-Harris window needs at least 2 points, got {n}.")
    a0, a1, a2, a3 = _BH_COEFFS
    x = 2.0 * np.pi * np.arange(n, dtype=np.float64) / (n - 1)
    window = a0 - a1 * np.cos(x) + a2 * np.cos(2.0 * x) - a3 * np.cos(3.0 * x)
    return window.astype(np.float32)


def cu8_to_complex(data: bytes | bytearray | memoryview | np.ndarray) -> np.ndarray:
    """Map interleaved unsigned 8-bit I/Q bytes to unit-scaled complex64 samples."""
    raw = np.frombuffer(data, dtype=np.uint8) if not isinstance(data, np.ndarray) else data
    if raw.size % 2:
        raise ValueError(f"Interleaved I/Q data must have an even length, got {raw.size}.")
    centred = raw.astype(np.float32)
    centred -= 128.0
    centred /= 128.0
    return centred.view(np.complex64)


class SpectralAnalyzer:
    """Windowed FFT magnitudes over fixed-width analysis windows of cu8 samples.

    One instance owns a scratch buffer that is reused between calls, so it must
    stay on a single thread (the pipeline's consumer).
    """

    def __init__(self, width: int):
        if width < 2:
            raise ValueError(f"Analysis window width must be >= 2, got {width}.")
        self.width = int(width)
        self.window = blackman_harris_window(self.width)
        self.window.setflags(write=False)
        self._scratch = np.empty(self.width, dtype=np.complex64)
        self._block_scratch: np.ndarray | None = None

    @property
    def window_bytes(self) -> int:
        return 2 * self.width

    def process(self, chunk: bytes | bytearray | memoryview | np.ndarray) -> np.ndarray:
        if len(chunk) != self.window_bytes:
            raise ValueError(
                f"Chunk length must match FFT width: expected {self.window_bytes} bytes, "
                f"received {len(chunk)}."
            )
        samples = cu8_to_complex(chunk)
        np.multiply(samples, self.window, out=self._scratch)
        spectrum = sp_fft.fft(self._scratch, overwrite_x=True)
        return np.abs(spectrum).astype(np.float32, copy=False)

    def process_block(self, block: bytes | bytearray | memoryview | np.ndarray) -> np.ndarray:
        """Spectra for every consecutive analysis window in ``block``, one per row."""
        if len(block) == 0 or len(block) % self.window_bytes:
            raise ValueError(
                f"Block length {len(block)} is not a whole number of "
                f"{self.window_bytes}-byte analysis windows."
            )
        frames = cu8_to_complex(block).reshape(-1, self.width)
        scratch = self._block_scratch
        if scratch is None or scratch.shape != frames.shape:
            scratch = np.empty(frames.shape, dtype=np.complex64)
            self._block_scratch = scratch
            LOG.debug("Allocated %dx%d FFT scratch buffer.", *frames.shape)
        np.multiply(frames, self.window, out=scratch)
        spectra = sp_fft.fft(scratch, axis=1, overwrite_x=True)
        return np.abs(spectra).astype(np.float32, copy=False)


__all__ = ["SpectralAnalyzer", "blackman_harris_window", "cu8_to_complex"]
