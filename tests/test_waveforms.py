"""Tests for the Ricker source and its spatial footprint."""

import numpy as np
import pytest

from wavestream.core.waveforms import (
    FOOTPRINT_RADIUS,
    RickerWavelet,
    source_footprint,
)


class TestRickerWavelet:
    """Tests for the band-limited source pulse."""

    def test_peak_at_one_period(self):
        """The pulse peaks with full amplitude at t = 1 / f0."""
        pulse = RickerWavelet(frequency=10.0, amplitude=2.5)
        assert pulse.delay == pytest.approx(0.1)
        assert pulse.evaluate(0.1) == pytest.approx(2.5)

    def test_symmetric_about_peak(self):
        pulse = RickerWavelet(frequency=25.0)
        for offset in (0.001, 0.01, 0.03):
            assert pulse.evaluate(pulse.delay + offset) == pytest.approx(
                pulse.evaluate(pulse.delay - offset)
            )

    def test_zero_mean(self):
        """The second derivative of a Gaussian integrates to zero."""
        pulse = RickerWavelet(frequency=10.0)
        t = np.linspace(0.0, 0.2, 20001)
        values = np.array([pulse.evaluate(x) for x in t])
        assert values.sum() * (t[1] - t[0]) == pytest.approx(0.0, abs=1e-4)

    def test_small_at_start(self):
        pulse = RickerWavelet(frequency=10.0)
        assert abs(pulse.evaluate(0.0)) < 2e-3

    def test_zero_amplitude_is_exactly_zero(self):
        pulse = RickerWavelet(frequency=10.0, amplitude=0.0)
        assert pulse.evaluate(0.05) == 0.0

    def test_invalid_frequency(self):
        with pytest.raises(ValueError):
            RickerWavelet(frequency=0.0)

    def test_evaluate_returns_float(self):
        assert isinstance(RickerWavelet(frequency=5.0).evaluate(0.1), float)


class TestSourceFootprint:
    """Tests for source_footprint()."""

    def test_center_source(self):
        fp = source_footprint(32, 32, 16, 16)
        assert fp.rows == slice(13, 20)
        assert fp.cols == slice(13, 20)
        assert fp.weights.shape == (7, 7)
        assert fp.weights[3, 3] == pytest.approx(1.0)

    def test_gaussian_falloff(self):
        fp = source_footprint(32, 32, 16, 16)
        assert fp.weights[3, 4] == pytest.approx(np.exp(-1.0 / 9.0))
        assert fp.weights[3, 6] == pytest.approx(np.exp(-9.0 / 9.0))

    def test_radius_is_three_cells(self):
        """Cells with r > 3 carry no weight (the window corners)."""
        fp = source_footprint(32, 32, 16, 16)
        assert fp.weights[0, 0] == 0.0
        assert fp.weights[1, 0] == 0.0  # r**2 = 4 + 9 = 13
        assert fp.weights[0, 3] > 0.0  # r = 3
        assert np.count_nonzero(fp.weights) == 29

    def test_clipped_to_interior(self):
        """Windows never include the boundary ring."""
        fp = source_footprint(20, 20, 1, 18)
        assert fp.rows.start >= 1 and fp.rows.stop <= 19
        assert fp.cols.start >= 1 and fp.cols.stop <= 19
        assert fp.weights.shape == (fp.rows.stop - fp.rows.start, fp.cols.stop - fp.cols.start)

    def test_edge_source_keeps_neighbors(self):
        """A source on the ring still reaches interior cells within radius."""
        fp = source_footprint(20, 20, 0, 10)
        assert not fp.is_empty
        assert fp.cols.start == 1

    def test_outside_grid_is_empty(self):
        fp = source_footprint(20, 20, 100, 100)
        assert fp.is_empty

    def test_far_outside_ring_is_empty(self):
        fp = source_footprint(20, 20, -FOOTPRINT_RADIUS - 1, 10)
        assert fp.is_empty
