from __future__ import annotations

import logging

import numpy as np

LOG = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 3.0
LOW_PERCENT = 75
HIGH_PERCENT = 95

_SPARK_CHARS = " ▁▂▃▄▅▆▇"


def _percentile_indices(size: int) -> tuple[int, int]:
    if size < 2:
        raise ValueError(f"Interestingness needs at least 2 bins, got {size}.")
    return size * LOW_PERCENT // 100, size * HIGH_PERCENT // 100


def _sparkline(values: np.ndarray, lo: float, hi: float) -> str:
    span = hi - lo
    if not np.isfinite(span) or span <= 0.0:
        return _SPARK_CHARS[0] * values.size
    top = len(_SPARK_CHARS) - 1
    positions = np.floor((np.asarray(values, dtype=np.float64) - lo) / span * top)
    positions = np.clip(np.nan_to_num(positions, nan=0.0), 0, top).astype(int)
    return "".join(_SPARK_CHARS[pos] for pos in positions)


class InterestingnessEstimator:
    """Score spectra by the ratio of their 95th to 75th percentile bin magnitude.

    A narrowband carrier lifts a handful of bins well above the noise floor
    while leaving the 75th percentile near it, so the ratio grows. Flat noise
    stays close to 1.5. A zero 75th percentile yields ``inf`` (always
    interesting); a fully silent window yields ``nan`` (never interesting).
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, *, debug: bool = False):
        self.threshold = float(threshold)
        self.debug = debug

    def score(self, spectrum: np.ndarray) -> float:
        ordered = np.sort(np.asarray(spectrum, dtype=np.float32))
        low_idx, high_idx = _percentile_indices(ordered.size)
        low, high = ordered[low_idx], ordered[high_idx]
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = float(high / low)
        if self.debug:
            self._debug_print(np.asarray(spectrum, dtype=np.float32), ordered, ratio)
        return ratio

    def score_many(self, spectra: np.ndarray) -> np.ndarray:
        """Score each row of a ``(windows, bins)`` magnitude array."""
        spectra = np.asarray(spectra, dtype=np.float32)
        if spectra.ndim != 2:
            raise ValueError(f"Expected a 2-D array of spectra, received shape {spectra.shape!r}.")
        ordered = np.sort(spectra, axis=1)
        low_idx, high_idx = _percentile_indices(ordered.shape[1])
        with np.errstate(divide="ignore", invalid="ignore"):
            ratios = ordered[:, high_idx] / ordered[:, low_idx]
        if self.debug:
            for row, sorted_row, ratio in zip(spectra, ordered, ratios):
                self._debug_print(row, sorted_row, float(ratio))
        return ratios

    def is_interesting(self, score: float) -> bool:
        return score > self.threshold

    def hits(self, spectra: np.ndarray) -> int:
        """Number of spectra whose score exceeds the threshold."""
        return int(np.count_nonzero(self.score_many(spectra) > self.threshold))

    def _debug_print(self, spectrum: np.ndarray, ordered: np.ndarray, ratio: float) -> None:
        low_idx, high_idx = _percentile_indices(ordered.size)
        lo, hi = float(ordered[0]), float(ordered[-1])
        step = max(1, ordered.size // 10)
        LOG.debug(
            "p75: %.2f p95: %.2f, ratio: %.2f, %s %s",
            ordered[low_idx],
            ordered[high_idx],
            ratio,
            _sparkline(ordered[::step], lo, hi),
            _sparkline(spectrum, lo, hi),
        )


__all__ = ["DEFAULT_THRESHOLD", "InterestingnessEstimator"]
