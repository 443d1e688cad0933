"""Velocity model presets.

Each preset fills a ``(ny, nx)`` wave-speed field from the base speed ``c0``.
Models are deterministic and built once on the host before being uploaded
to the compute device.

Presets:
    homogeneous: c0 everywhere
    two_layer: c0 above the vertical midline, 1.5 * c0 at and below it
    circle: 0.7 * c0 inside a disk of radius 0.2 * nx at the domain center

Any other name falls back to ``homogeneous``.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

LOWER_LAYER_FACTOR = 1.5
INCLUSION_FACTOR = 0.7
INCLUSION_RADIUS_FRACTION = 0.2


def _homogeneous(nx: int, ny: int, c0: float) -> NDArray[np.float32]:
    return np.full((ny, nx), c0, dtype=np.float32)


def _two_layer(nx: int, ny: int, c0: float) -> NDArray[np.float32]:
    speed = _homogeneous(nx, ny, c0)
    speed[ny // 2:, :] = LOWER_LAYER_FACTOR * c0
    return speed


def _circle(nx: int, ny: int, c0: float) -> NDArray[np.float32]:
    speed = _homogeneous(nx, ny, c0)
    radius = INCLUSION_RADIUS_FRACTION * nx
    rows, cols = np.ogrid[:ny, :nx]
    inside = (cols - nx // 2) ** 2 + (rows - ny // 2) ** 2 < radius**2
    speed[inside] = INCLUSION_FACTOR * c0
    return speed


VELOCITY_MODELS = {
    "homogeneous": _homogeneous,
    "two_layer": _two_layer,
    "circle": _circle,
}


def build_velocity_model(
    nx: int, ny: int, c0: float, model: str = "homogeneous"
) -> NDArray[np.float32]:
    """Build the wave-speed field for a named preset.

    Args:
        nx: Number of columns
        ny: Number of rows
        c0: Base wave speed
        model: Preset name (see ``VELOCITY_MODELS``)

    Returns:
        Read-only float32 array of shape ``(ny, nx)``.
    """
    builder = VELOCITY_MODELS.get(model)
    if builder is None:
        # Unknown names are not an error; see DESIGN.md.
        logger.debug("Unknown velocity model %r, using homogeneous", model)
        builder = _homogeneous

    speed = builder(nx, ny, c0)
    speed.flags.writeable = False
    return speed
