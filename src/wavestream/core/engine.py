"""Device-resident 2D acoustic wave engine.

This module advances a scalar pressure field with a second-order
finite-difference scheme on a PyTorch device (CUDA, Apple MPS, or CPU).
Every step is expressed as whole-grid tensor operations so that one
operation instance runs per grid cell on the device.

Per interior cell (the one-cell boundary ring is never written and stays
zero):

    lap   = u[i+1,j] + u[i-1,j] + u[i,j+1] + u[i,j-1] - 4 u[i,j]
    lap_v = same stencil applied to (u - u_prev)
    p     = 2 u - u_prev + (c dt / dx)**2 lap - VISCOSITY dt lap_v
    p    *= max(0, 1 - SPONGE_STRENGTH * sponge)      where sponge > 0
    u_next = SATURATION_GAIN * tanh(p / SATURATION_GAIN)

The artificial viscosity term damps grid-scale noise; the tanh saturation
bounds the field under source overdrive or strong reflections.

Buffers:
    Three same-size field tensors are rotated by index, ``(t + 1) mod 3``,
    rather than by swapping references. The next state is always written
    into the oldest buffer.

Ordering per step:
    stencil update -> source injection -> rotation -> device synchronize

Memory Usage:
    - Field buffers: 3 x nx x ny x 4 bytes
    - Interior coefficient and attenuation tensors: 2 x nx x ny x 4 bytes
    - Example (512 x 512): ~5 MB device memory

Example:
    >>> from wavestream.core.config import resolve_config
    >>> engine = WaveEngine(resolve_config({"nx": 128, "ny": 128}), device="cpu")
    >>> engine.run(steps=200)
    >>> field = engine.get_field()
    >>> field.shape
    (128, 128)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import contextmanager
from typing import Literal

import numpy as np
import torch
from numpy.typing import NDArray

from wavestream.core.config import SimulationConfig
from wavestream.core.models import build_velocity_model
from wavestream.core.sponge import build_sponge_mask
from wavestream.core.waveforms import RickerWavelet, source_footprint

logger = logging.getLogger(__name__)

_HAS_CUDA = torch.cuda.is_available()
_HAS_MPS = torch.backends.mps.is_available() and torch.backends.mps.is_built()

# Kernel constants
VISCOSITY = 0.1
SPONGE_STRENGTH = 0.03
SATURATION_GAIN = 5.0

NUM_BUFFERS = 3


class DeviceError(RuntimeError):
    """Raised when a device allocation or kernel launch fails.

    Attributes:
        operation: Name of the failing engine operation
        device: Device the operation was issued on
    """

    def __init__(self, operation: str, device: str, cause: BaseException):
        self.operation = operation
        self.device = device
        super().__init__(f"{operation} failed on device '{device}': {cause}")


def has_gpu_support() -> bool:
    """Check if a GPU backend (CUDA or MPS) is available."""
    return _HAS_CUDA or _HAS_MPS


def get_gpu_info() -> dict:
    """Get information about GPU support.

    Returns:
        Dict with keys: available, backend, pytorch_version
    """
    if _HAS_CUDA:
        backend = "cuda"
    elif _HAS_MPS:
        backend = "mps"
    else:
        backend = None
    return {
        "available": backend is not None,
        "backend": backend,
        "pytorch_version": torch.__version__,
    }


def select_device(device: Literal["auto", "cuda", "mps", "cpu"] = "auto") -> str:
    """Resolve a device request to a concrete PyTorch device name.

    Raises:
        RuntimeError: If a specific GPU backend is requested but unavailable.
    """
    if device == "auto":
        if _HAS_CUDA:
            return "cuda"
        if _HAS_MPS:
            return "mps"
        return "cpu"
    if device == "cuda" and not _HAS_CUDA:
        raise RuntimeError("CUDA backend not available. Check PyTorch installation.")
    if device == "mps" and not _HAS_MPS:
        raise RuntimeError("MPS backend not available. Check PyTorch installation.")
    if device not in ("cuda", "mps", "cpu"):
        raise ValueError(f"Unknown device {device!r}")
    return device


def _laplacian(u: torch.Tensor) -> torch.Tensor:
    """Five-point Laplacian on the interior of ``u`` (no 1/dx**2 factor)."""
    return (
        u[:-2, 1:-1]
        + u[2:, 1:-1]
        + u[1:-1, :-2]
        + u[1:-1, 2:]
        - 4.0 * u[1:-1, 1:-1]
    )


class WaveEngine:
    """Time-stepping engine for the 2D scalar wave equation.

    Args:
        config: Resolved simulation configuration
        device: PyTorch device ('auto', 'cuda', 'mps', 'cpu')

    Raises:
        RuntimeError: If the requested GPU backend is not available
        DeviceError: If allocating device tensors fails
    """

    def __init__(
        self,
        config: SimulationConfig,
        device: Literal["auto", "cuda", "mps", "cpu"] = "auto",
    ):
        self.config = config
        self._device = select_device(device)

        self.velocity = build_velocity_model(config.nx, config.ny, config.c0, config.model)
        self.sponge = build_sponge_mask(config.nx, config.ny, config.pml)
        self.source = RickerWavelet(frequency=config.f0, amplitude=config.amp)
        self._footprint = source_footprint(config.nx, config.ny, config.sx, config.sy)

        if self._footprint.is_empty:
            logger.warning(
                "Source at (%d, %d) lies outside the updated interior; no energy will be injected",
                config.sx, config.sy,
            )

        # Per-cell coefficients are only needed on the interior
        coef = (self.velocity[1:-1, 1:-1] * (config.dt / config.dx)) ** 2
        inner = self.sponge[1:-1, 1:-1]
        attenuation = np.where(
            inner > 0, np.maximum(0.0, 1.0 - SPONGE_STRENGTH * inner), 1.0
        )

        with self._device_operation("allocate field buffers"):
            self._buffers = [
                torch.zeros(*config.shape, device=self._device, dtype=torch.float32)
                for _ in range(NUM_BUFFERS)
            ]
            self._coef = torch.tensor(
                coef.astype(np.float32), device=self._device, dtype=torch.float32
            )
            self._attenuation = torch.tensor(
                attenuation.astype(np.float32), device=self._device, dtype=torch.float32
            )
            self._source_weights = torch.tensor(
                self._footprint.weights, device=self._device, dtype=torch.float32
            )

        # MPS has no float64 support
        self._accum_dtype = torch.float32 if self._device == "mps" else torch.float64

        self._index = 0
        self._step_count = 0

        logger.info(
            "Engine ready: %dx%d grid on %s, dt=%g, model=%s",
            config.nx, config.ny, self._device, config.dt, config.model,
        )

    @property
    def device(self) -> str:
        """Current compute device."""
        return self._device

    @property
    def using_gpu(self) -> bool:
        """True if running on a GPU backend."""
        return self._device in ("cuda", "mps")

    @property
    def step_count(self) -> int:
        """Number of timesteps executed."""
        return self._step_count

    @property
    def time(self) -> float:
        """Simulated time of the current field."""
        return self._step_count * self.config.dt

    @property
    def buffer_index(self) -> int:
        """Index of the buffer holding the current field."""
        return self._index

    @property
    def _current(self) -> torch.Tensor:
        return self._buffers[self._index]

    @property
    def _previous(self) -> torch.Tensor:
        return self._buffers[(self._index - 1) % NUM_BUFFERS]

    @property
    def _next(self) -> torch.Tensor:
        return self._buffers[(self._index + 1) % NUM_BUFFERS]

    @contextmanager
    def _device_operation(self, operation: str):
        try:
            yield
        except DeviceError:
            raise
        except RuntimeError as e:
            raise DeviceError(operation, self._device, e) from e

    def _update(self, prev: torch.Tensor, cur: torch.Tensor, nxt: torch.Tensor) -> None:
        """Stencil update of the interior of ``nxt`` from ``cur`` and ``prev``."""
        lap = _laplacian(cur)
        lap_v = _laplacian(cur - prev)

        provisional = (
            2.0 * cur[1:-1, 1:-1]
            - prev[1:-1, 1:-1]
            + self._coef * lap
            - (VISCOSITY * self.config.dt) * lap_v
        )
        provisional = provisional * self._attenuation

        nxt[1:-1, 1:-1] = SATURATION_GAIN * torch.tanh(provisional / SATURATION_GAIN)

    def _inject(self, nxt: torch.Tensor) -> None:
        """Add the source pulse for the current time into ``nxt``."""
        if self._footprint.is_empty:
            return
        value = self.source.evaluate(self.time)
        nxt[self._footprint.rows, self._footprint.cols] += value * self._source_weights

    def synchronize(self) -> None:
        """Block until all queued device work has completed."""
        if self._device == "cuda":
            torch.cuda.synchronize()
        elif self._device == "mps":
            torch.mps.synchronize()

    def step(self) -> None:
        """Execute one timestep: update, inject, rotate, synchronize."""
        prev, cur, nxt = self._previous, self._current, self._next

        with self._device_operation("stencil update"):
            self._update(prev, cur, nxt)

        with self._device_operation("source injection"):
            self._inject(nxt)

        self._index = (self._index + 1) % NUM_BUFFERS
        self._step_count += 1

        with self._device_operation("synchronize"):
            self.synchronize()

    def run(self, steps: int, callback: Callable[[int], None] | None = None) -> None:
        """Run a fixed number of timesteps.

        Args:
            steps: Number of timesteps
            callback: Called with the completed step count after each step
        """
        for _ in range(steps):
            self.step()
            if callback is not None:
                callback(self._step_count)

    def energy(self) -> float:
        """Sum of squares of the current field, reduced on the device."""
        with self._device_operation("energy reduction"):
            cur = self._current
            return torch.sum(cur * cur, dtype=self._accum_dtype).item()

    def get_field(self) -> NDArray[np.float32]:
        """Copy the current field to the host as a ``(ny, nx)`` float32 array."""
        with self._device_operation("field readback"):
            return self._current.detach().to("cpu", copy=True).numpy()

    def set_field(self, field: NDArray[np.floating], previous: NDArray[np.floating] | None = None) -> None:
        """Overwrite the current (and optionally previous) field.

        Raises:
            ValueError: If a field's shape doesn't match the grid shape.
        """
        for name, data in (("field", field), ("previous", previous)):
            if data is not None and data.shape != self.config.shape:
                raise ValueError(
                    f"{name} shape {data.shape} doesn't match grid shape {self.config.shape}"
                )

        with self._device_operation("field upload"):
            self._current.copy_(torch.as_tensor(np.asarray(field, dtype=np.float32)))
            prev = field if previous is None else previous
            self._previous.copy_(torch.as_tensor(np.asarray(prev, dtype=np.float32)))

    def memory_usage_mb(self) -> float:
        """Estimate device memory usage in MB."""
        bytes_per_field = self.config.num_cells * 4
        return (NUM_BUFFERS + 2) * bytes_per_field / (1024 * 1024)

    def reset(self) -> None:
        """Reset simulation to initial state."""
        for buf in self._buffers:
            buf.zero_()
        self._index = 0
        self._step_count = 0
