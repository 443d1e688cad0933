"""Absorbing sponge layer.

The sponge is a per-cell coefficient in [0, 1] that is zero in the interior
and rises toward 1 at the domain edge following a fourth-power profile:

    mask = ((w - d) / w) ** 4    for d < w
    mask = 0                     for d >= w

where ``d`` is the cell's distance (in cells) to the nearest edge and ``w``
is the layer thickness. The engine uses it to attenuate the field
multiplicatively rather than with a hard wall.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

SPONGE_ORDER = 4


def edge_distance(nx: int, ny: int) -> NDArray[np.int64]:
    """Distance of every cell to the nearest of the four domain edges."""
    cols = np.arange(nx)
    rows = np.arange(ny)
    dist_x = np.minimum(cols, nx - 1 - cols)
    dist_y = np.minimum(rows, ny - 1 - rows)
    return np.minimum(dist_y[:, np.newaxis], dist_x[np.newaxis, :])


def build_sponge_mask(nx: int, ny: int, width: int) -> NDArray[np.float32]:
    """Build the sponge coefficient field.

    Args:
        nx: Number of columns
        ny: Number of rows
        width: Layer thickness in cells. ``width <= 0`` disables absorption.

    Returns:
        Float32 array of shape ``(ny, nx)`` with values in [0, 1].
    """
    if width <= 0:
        return np.zeros((ny, nx), dtype=np.float32)

    d = edge_distance(nx, ny).astype(np.float64)
    depth = np.clip((width - d) / width, 0.0, None)
    return (depth**SPONGE_ORDER).astype(np.float32)
