"""Simulation parameter resolution.

Turns a flat set of named options (as received from the command line or a
relay control message) into a validated :class:`SimulationConfig`.

The time step is checked against the 2D CFL stability bound for the
second-order scheme used by :class:`~wavestream.core.engine.WaveEngine`:

    dt <= cfl * dx / (sqrt(2) * c0)

A requested dt above this ceiling is clamped down to it, never rejected.

Example:
    >>> cfg = resolve_config({"nx": "128", "ny": 128, "dt": 0.01})
    >>> cfg.dt <= max_stable_dt(cfg.dx, cfg.c0, cfg.cfl)
    True
    >>> (cfg.sx, cfg.sy)
    (64, 64)
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when an option is unknown, unparsable, or out of range."""

    pass


# Option name -> (parser kind, default). sx/sy default to the grid center.
DEFAULTS: dict[str, tuple[str, object]] = {
    "nx": ("int", 512),
    "ny": ("int", 512),
    "dx": ("float", 10.0),
    "dt": ("float", 0.001),
    "steps": ("int", 10000),
    "frames_every": ("int", 60),
    "pml": ("int", 40),
    "c0": ("float", 3000.0),
    "amp": ("float", 1.0),
    "f0": ("float", 10.0),
    "sx": ("int", None),
    "sy": ("int", None),
    "cfl": ("float", 0.5),
    "model": ("str", "homogeneous"),
}


@dataclass(frozen=True)
class SimulationConfig:
    """Resolved, validated simulation parameters.

    Grid arrays are laid out ``(ny, nx)``: ``sx`` indexes columns and
    ``sy`` indexes rows.
    """

    nx: int
    ny: int
    dx: float
    dt: float
    steps: int
    frames_every: int
    pml: int
    c0: float
    amp: float
    f0: float
    sx: int
    sy: int
    cfl: float
    model: str
    requested_dt: float

    @property
    def shape(self) -> tuple[int, int]:
        """Array shape of every field, ``(ny, nx)``."""
        return (self.ny, self.nx)

    @property
    def num_cells(self) -> int:
        return self.nx * self.ny

    @property
    def frame_bytes(self) -> int:
        """Size of one binary frame (float32 per cell)."""
        return self.nx * self.ny * 4

    @property
    def dt_clamped(self) -> bool:
        return self.dt < self.requested_dt

    def to_dict(self) -> dict:
        return asdict(self)


def max_stable_dt(dx: float, c0: float, cfl: float) -> float:
    """Largest time step satisfying the 2D CFL bound."""
    return cfl * dx / (math.sqrt(2.0) * c0)


def _parse_value(name: str, kind: str, value: object) -> object:
    if kind == "str":
        return str(value)

    if isinstance(value, bool):
        raise ConfigError(f"Invalid value for '{name}': {value!r} is not a number")

    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(
            f"Invalid value for '{name}': {value!r} is not a valid {kind}"
        ) from None

    if not math.isfinite(number):
        raise ConfigError(f"Invalid value for '{name}': {value!r} is not finite")

    if kind == "int":
        if not number.is_integer():
            raise ConfigError(
                f"Invalid value for '{name}': {value!r} is not a valid int"
            )
        return int(number)
    return number


def _validate(values: dict) -> None:
    if values["nx"] < 3 or values["ny"] < 3:
        raise ConfigError(
            f"Grid must be at least 3x3, got nx={values['nx']} ny={values['ny']}"
        )
    for name in ("dx", "dt", "c0", "cfl", "f0"):
        if values[name] <= 0:
            raise ConfigError(f"'{name}' must be positive, got {values[name]}")
    if values["frames_every"] < 1:
        raise ConfigError(
            f"'frames_every' must be >= 1, got {values['frames_every']}"
        )
    if values["steps"] < 0:
        raise ConfigError(f"'steps' must be non-negative, got {values['steps']}")
    if values["pml"] < 0:
        raise ConfigError(f"'pml' must be non-negative, got {values['pml']}")


def resolve_config(options: Mapping[str, object] | None = None) -> SimulationConfig:
    """Resolve a flat option set into a :class:`SimulationConfig`.

    Args:
        options: Mapping of option name to value. Values may be strings or
            numbers. Missing names and ``None`` values take their defaults.

    Returns:
        The validated configuration, with dt clamped to the CFL ceiling.

    Raises:
        ConfigError: On an unknown option name, a value that cannot be parsed
            as its expected type, or a physically invalid value.
    """
    options = dict(options or {})

    unknown = sorted(set(options) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"Unrecognized option(s): {', '.join(unknown)}")

    values: dict[str, object] = {}
    for name, (kind, default) in DEFAULTS.items():
        raw = options.get(name)
        values[name] = default if raw is None else _parse_value(name, kind, raw)

    if values["sx"] is None:
        values["sx"] = values["nx"] // 2
    if values["sy"] is None:
        values["sy"] = values["ny"] // 2

    _validate(values)

    requested_dt = values["dt"]
    dt_max = max_stable_dt(values["dx"], values["c0"], values["cfl"])
    if requested_dt > dt_max:
        logger.warning(
            "dt=%g exceeds CFL limit %g (cfl=%g, dx=%g, c0=%g); clamping",
            requested_dt, dt_max, values["cfl"], values["dx"], values["c0"],
        )
        values["dt"] = dt_max

    return SimulationConfig(requested_dt=requested_dt, **values)
