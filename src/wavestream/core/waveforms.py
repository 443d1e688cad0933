"""Point source waveform and spatial footprint.

The source is a Ricker wavelet (second derivative of a Gaussian), a
zero-mean band-limited pulse with dominant frequency ``f0``. It is delayed
by one period so that it starts from (nearly) zero at t = 0.

Its value is spread over a small disk around the source cell with an
isotropic Gaussian falloff ``exp(-r**2 / 9)`` for ``r <= 3`` cells.

Example:
    >>> pulse = RickerWavelet(frequency=10.0, amplitude=1.0)
    >>> round(pulse.evaluate(0.1), 6)  # peak at t = 1 / f0
    1.0
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

FOOTPRINT_RADIUS = 3
FOOTPRINT_DECAY = 9.0


@dataclass
class RickerWavelet:
    """Ricker wavelet source.

    Args:
        frequency: Dominant frequency in Hz
        amplitude: Peak amplitude (default: 1.0)
    """

    frequency: float
    amplitude: float = 1.0

    def __post_init__(self):
        if self.frequency <= 0:
            raise ValueError(f"frequency must be positive, got {self.frequency}")
        self._t_peak = 1.0 / self.frequency

    @property
    def delay(self) -> float:
        """Time of the pulse peak."""
        return self._t_peak

    def evaluate(self, t: float) -> float:
        """Evaluate source amplitude at time t."""
        arg = (np.pi * self.frequency * (t - self._t_peak)) ** 2
        return float(self.amplitude * (1.0 - 2.0 * arg) * np.exp(-arg))


@dataclass(frozen=True)
class SourceFootprint:
    """Window of the field touched by the source and its weights.

    ``weights`` has the shape of ``field[rows, cols]``; cells outside the
    radius or on the boundary ring carry weight 0.
    """

    rows: slice
    cols: slice
    weights: NDArray[np.float32]

    @property
    def is_empty(self) -> bool:
        return self.weights.size == 0 or not np.any(self.weights)


def source_footprint(nx: int, ny: int, sx: int, sy: int) -> SourceFootprint:
    """Compute the injection window for a source at column sx, row sy.

    The window is clipped to the interior ``[1, n - 2]`` on both axes, the
    same cells the stencil update writes.
    """
    r = FOOTPRINT_RADIUS
    row_lo, row_hi = max(sy - r, 1), min(sy + r + 1, ny - 1)
    col_lo, col_hi = max(sx - r, 1), min(sx + r + 1, nx - 1)

    if row_lo >= row_hi or col_lo >= col_hi:
        return SourceFootprint(
            rows=slice(0, 0),
            cols=slice(0, 0),
            weights=np.zeros((0, 0), dtype=np.float32),
        )

    rows = np.arange(row_lo, row_hi)[:, np.newaxis]
    cols = np.arange(col_lo, col_hi)[np.newaxis, :]
    r2 = (rows - sy) ** 2 + (cols - sx) ** 2
    weights = np.where(r2 <= r * r, np.exp(-r2 / FOOTPRINT_DECAY), 0.0)

    return SourceFootprint(
        rows=slice(row_lo, row_hi),
        cols=slice(col_lo, col_hi),
        weights=weights.astype(np.float32),
    )
