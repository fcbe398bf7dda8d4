"""
Shared pytest fixtures and configuration for snipper tests.

Provides synthetic cu8 generation, fake radios and sinks, and hypothesis strategies.
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from hypothesis import strategies as st

# Add src to path for tests
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

WINDOW = 128
BLOCK_SIZE = 64 * 2 * WINDOW  # 64 analysis windows per block


# ============================================================================
# Synthetic cu8 Data Generation
# ============================================================================


def to_cu8(iq: np.ndarray) -> bytes:
    """Quantise complex samples in [-1, 1) to interleaved unsigned 8-bit bytes."""
    interleaved = np.empty(iq.size * 2, dtype=np.float64)
    interleaved[0::2] = iq.real
    interleaved[1::2] = iq.imag
    scaled = np.round(interleaved * 128.0 + 128.0)
    return np.clip(scaled, 0, 255).astype(np.uint8).tobytes()


def noise_iq(rng: np.random.Generator, n_samples: int, sigma: float = 0.02) -> np.ndarray:
    return sigma * (rng.standard_normal(n_samples) + 1j * rng.standard_normal(n_samples))


def comb_iq(
    rng: np.random.Generator,
    n_samples: int,
    *,
    width: int = WINDOW,
    bins: range = range(20, 44, 2),
    amplitude: float = 0.06,
) -> np.ndarray:
    """
    Narrowband comb of bin-centred tones two bins apart.

    Every analysis window of ``width`` samples sees the same dozen strong bins
    over a flat floor, which scores well above the default threshold.
    """
    t = np.arange(n_samples)
    phases = rng.uniform(0.0, 2.0 * np.pi, size=len(bins))
    signal = np.zeros(n_samples, dtype=np.complex128)
    for k, phase in zip(bins, phases):
        signal += amplitude * np.exp(1j * (2.0 * np.pi * k * t / width + phase))
    return signal


def quiet_block(rng: np.random.Generator, block_size: int = BLOCK_SIZE) -> bytes:
    return to_cu8(noise_iq(rng, block_size // 2))


def burst_block(rng: np.random.Generator, block_size: int = BLOCK_SIZE) -> bytes:
    n = block_size // 2
    return to_cu8(comb_iq(rng, n) + noise_iq(rng, n))


def burst_capture(
    rng: np.random.Generator,
    *,
    sample_rate: int,
    seconds: float,
    burst_start: float,
    burst_seconds: float,
    block_size: int = BLOCK_SIZE,
) -> bytes:
    """A whole number of blocks of noise with one comb burst in the middle."""
    pairs_per_block = block_size // 2
    n_samples = (int(sample_rate * seconds) // pairs_per_block) * pairs_per_block
    iq = noise_iq(rng, n_samples)
    start = int(sample_rate * burst_start)
    stop = min(n_samples, start + int(sample_rate * burst_seconds))
    iq[start:stop] += comb_iq(rng, stop - start)
    return to_cu8(iq)


@pytest.fixture()
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


# ============================================================================
# Fake Collaborators
# ============================================================================


class ListSource:
    """In-memory radio that serves preset blocks, then an empty (short) read."""

    def __init__(self, blocks, *, block_size: int = BLOCK_SIZE, live: bool = False, fail_at=None, on_read=None):
        self.blocks = list(blocks)
        self.block_size = block_size
        self.live = live
        self.total_blocks = len(self.blocks)
        self.fail_at = fail_at
        self.on_read = on_read
        self.reads = 0
        self.opened = False
        self.closed = False
        self.configured = None

    def open(self) -> None:
        self.opened = True

    def configure(self, center_freq: int, sample_rate: int) -> None:
        self.configured = (center_freq, sample_rate)

    def read_block(self) -> bytes:
        index = self.reads
        self.reads += 1
        if self.on_read is not None:
            self.on_read(index)
        if self.fail_at is not None and index >= self.fail_at:
            raise OSError("usb transfer failed")
        if index < len(self.blocks):
            return self.blocks[index]
        return b""

    def close(self) -> None:
        self.closed = True


class MemorySink:
    """Capture sink that keeps flushed blocks in memory."""

    def __init__(self, fail: bool = False):
        self.captures: list[list[bytes]] = []
        self.fail = fail

    def write_capture(self, blocks) -> Path:
        if self.fail:
            raise OSError("disk full")
        self.captures.append(list(blocks))
        return Path(f"capture_{len(self.captures)}.cu8")


@pytest.fixture()
def memory_sink() -> MemorySink:
    return MemorySink()


# ============================================================================
# Hypothesis Strategies for Property-Based Testing
# ============================================================================


@st.composite
def magnitude_spectra(draw, min_size=2, max_size=128):
    """Positive magnitude spectra with a bounded dynamic range."""
    size = draw(st.integers(min_value=min_size, max_value=max_size))
    values = draw(
        st.lists(
            st.floats(min_value=1e-3, max_value=1e3, allow_nan=False, allow_infinity=False),
            min_size=size,
            max_size=size,
        )
    )
    return np.array(values, dtype=np.float32)


# ============================================================================
# Temporary Directory Management
# ============================================================================


@pytest.fixture(autouse=True)
def change_test_dir(tmp_path, monkeypatch):
    """
    Automatically change to temp directory for each test.
    Helps prevent test pollution of project directory.
    """
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ============================================================================
# Pytest Configuration Hooks
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may be slow)"
    )
