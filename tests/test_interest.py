from __future__ import annotations

import logging
import math

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from snipper.interest import InterestingnessEstimator
from snipper.spectrum import SpectralAnalyzer

from conftest import BLOCK_SIZE, burst_block, magnitude_spectra, quiet_block


@settings(max_examples=80, deadline=None)
@given(magnitude_spectra(), st.floats(min_value=1e-3, max_value=1e3))
def test_score_is_scale_invariant(spectrum: np.ndarray, factor: float) -> None:
    estimator = InterestingnessEstimator()
    base = estimator.score(spectrum)
    scaled = estimator.score(spectrum * np.float32(factor))
    assert scaled == pytest.approx(base, rel=1e-5)


def test_isolated_spike_is_interesting() -> None:
    spectrum = np.full(20, 1e-3, dtype=np.float32)
    spectrum[7] = 1.0
    estimator = InterestingnessEstimator()
    score = estimator.score(spectrum)
    assert score > estimator.threshold
    assert estimator.is_interesting(score)


def test_flat_spectrum_scores_one() -> None:
    assert InterestingnessEstimator().score(np.ones(128, dtype=np.float32)) == pytest.approx(1.0)


def test_uses_floor_percentile_indices() -> None:
    # 10 bins: low = sorted[7], high = sorted[9]
    spectrum = np.arange(1, 11, dtype=np.float32)[::-1].copy()
    assert InterestingnessEstimator().score(spectrum) == pytest.approx(10.0 / 8.0)


def test_zero_low_percentile_is_infinite_and_interesting() -> None:
    spectrum = np.zeros(20, dtype=np.float32)
    spectrum[3] = 0.5
    estimator = InterestingnessEstimator()
    score = estimator.score(spectrum)
    assert math.isinf(score) and score > 0
    assert estimator.is_interesting(score)


def test_silent_window_is_not_interesting() -> None:
    estimator = InterestingnessEstimator()
    score = estimator.score(np.zeros(128, dtype=np.float32))
    assert math.isnan(score)
    assert not estimator.is_interesting(score)


def test_needs_two_bins() -> None:
    with pytest.raises(ValueError):
        InterestingnessEstimator().score(np.ones(1, dtype=np.float32))


def test_score_many_matches_score(rng: np.random.Generator) -> None:
    spectra = rng.rayleigh(size=(16, 128)).astype(np.float32)
    spectra[3, 40:50] *= 50.0
    estimator = InterestingnessEstimator()
    ratios = estimator.score_many(spectra)
    assert ratios.shape == (16,)
    for row, ratio in zip(spectra, ratios):
        assert float(ratio) == pytest.approx(estimator.score(row), rel=1e-6)
    assert estimator.hits(spectra) == 1


def test_score_many_rejects_1d() -> None:
    with pytest.raises(ValueError):
        InterestingnessEstimator().score_many(np.ones(8, dtype=np.float32))


def test_noise_and_burst_blocks_are_told_apart(rng: np.random.Generator) -> None:
    analyzer = SpectralAnalyzer(128)
    estimator = InterestingnessEstimator()
    windows = BLOCK_SIZE // 256
    assert estimator.hits(analyzer.process_block(quiet_block(rng))) == 0
    assert estimator.hits(analyzer.process_block(burst_block(rng))) == windows


def test_threshold_is_configurable() -> None:
    spectrum = np.arange(1, 11, dtype=np.float32)
    assert InterestingnessEstimator(threshold=1.2).is_interesting(InterestingnessEstimator().score(spectrum))
    assert not InterestingnessEstimator(threshold=1.3).is_interesting(1.25)


def test_debug_output_is_logged(caplog) -> None:
    spectrum = np.full(20, 0.1, dtype=np.float32)
    spectrum[5] = 2.0
    estimator = InterestingnessEstimator(debug=True)
    with caplog.at_level(logging.DEBUG, logger="snipper.interest"):
        estimator.score(spectrum)
        estimator.score_many(np.stack([spectrum, spectrum]))
    records = [r for r in caplog.records if r.name == "snipper.interest"]
    assert len(records) == 3
    assert "ratio: 20.00" in records[0].getMessage()
    assert "▇" in records[0].getMessage()


def test_debug_off_is_silent(caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="snipper.interest"):
        InterestingnessEstimator().score(np.linspace(0.1, 1.0, 32, dtype=np.float32))
    assert not [r for r in caplog.records if r.name == "snipper.interest"]
