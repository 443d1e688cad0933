"""Message formats on both sides of the relay.

Engine side:
    :func:`parse_line` turns one line of the engine's text channel into a
    closed set of message types: :class:`Header`, :class:`Perf`,
    :class:`Energy`, or :class:`Unrecognized` (log output, diagnostics,
    malformed tags).

Client side:
    :func:`parse_control` decodes JSON control messages::

        {"type": "start", "cfg": {"nx": 512, "ny": 512, ...}}
        {"type": "stop"}

    and :func:`meta_message` / :func:`analytics_message` build the JSON
    messages sent back to the client.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Union

# Engine launch parameters fixed by the relay
RELAY_STEPS = 1_000_000_000
RELAY_FRAMES_EVERY = 60

REQUIRED_START_KEYS = ("nx", "ny", "dx", "dt", "sponge", "c0", "amp", "f0", "model")


class ControlMessageError(ValueError):
    """Raised when a client control message cannot be decoded."""

    pass


# =============================================================================
# Engine text channel
# =============================================================================


@dataclass(frozen=True)
class Header:
    nx: int
    ny: int
    dt: float | None = None
    frames_every: int | None = None

    @property
    def frame_bytes(self) -> int:
        return self.nx * self.ny * 4


@dataclass(frozen=True)
class Perf:
    step_ms_avg: float


@dataclass(frozen=True)
class Energy:
    value: float


@dataclass(frozen=True)
class Unrecognized:
    line: str


EngineMessage = Union[Header, Perf, Energy, Unrecognized]


def _fields(tokens: list[str]) -> dict[str, str]:
    pairs = (token.split("=", 1) for token in tokens if "=" in token)
    return {key: value for key, value in pairs}


def parse_line(line: str) -> EngineMessage:
    """Classify one line of engine text output.

    Never raises: anything that is not a well-formed HEADER, PERF or ENERGY
    message is returned as :class:`Unrecognized`.
    """
    tokens = line.strip().split()
    if not tokens:
        return Unrecognized(line)

    tag, values = tokens[0], _fields(tokens[1:])
    try:
        if tag == "HEADER":
            nx, ny = int(values["nx"]), int(values["ny"])
            if nx <= 0 or ny <= 0:
                return Unrecognized(line)
            dt = float(values["dt"]) if "dt" in values else None
            frames_every = int(values["frames_every"]) if "frames_every" in values else None
            return Header(nx=nx, ny=ny, dt=dt, frames_every=frames_every)
        if tag == "PERF":
            return Perf(step_ms_avg=float(values["step_ms_avg"]))
        if tag == "ENERGY":
            return Energy(value=float(values["val"]))
    except (KeyError, ValueError):
        pass
    return Unrecognized(line)


# =============================================================================
# Client control channel
# =============================================================================


@dataclass(frozen=True)
class StartCommand:
    cfg: dict = field(default_factory=dict)


@dataclass(frozen=True)
class StopCommand:
    pass


ControlCommand = Union[StartCommand, StopCommand]


def parse_control(raw: str | bytes) -> ControlCommand:
    """Decode a client control message.

    Raises:
        ControlMessageError: If the message is not JSON, has an unknown type,
            or a start command lacks a usable configuration.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ControlMessageError(f"Control message is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ControlMessageError("Control message must be a JSON object")

    kind = data.get("type")
    if kind == "stop":
        return StopCommand()
    if kind != "start":
        raise ControlMessageError(f"Unknown control message type: {kind!r}")

    cfg = data.get("cfg")
    if not isinstance(cfg, dict):
        raise ControlMessageError("Start command requires a 'cfg' object")
    missing = [key for key in REQUIRED_START_KEYS if cfg.get(key) is None]
    if missing:
        raise ControlMessageError(
            f"Start command is missing configuration key(s): {', '.join(missing)}"
        )
    return StartCommand(cfg=cfg)


def _format_arg(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def engine_args(cfg: dict) -> list[str]:
    """Build engine command-line arguments from a start configuration.

    The sponge width is passed as ``--pml``. A custom source location is
    forwarded only when both ``sx`` and ``sy`` are present.
    """
    args = [
        "--nx", _format_arg(cfg["nx"]),
        "--ny", _format_arg(cfg["ny"]),
        "--dx", _format_arg(cfg["dx"]),
        "--dt", _format_arg(cfg["dt"]),
        "--steps", str(RELAY_STEPS),
        "--frames_every", str(RELAY_FRAMES_EVERY),
        "--pml", _format_arg(cfg["sponge"]),
        "--c0", _format_arg(cfg["c0"]),
        "--amp", _format_arg(cfg["amp"]),
        "--f0", _format_arg(cfg["f0"]),
        "--model", str(cfg["model"]),
    ]
    if cfg.get("sx") is not None and cfg.get("sy") is not None:
        args += ["--sx", _format_arg(cfg["sx"]), "--sy", _format_arg(cfg["sy"])]
    return args


def meta_message(nx: int, ny: int) -> str:
    return json.dumps({"type": "meta", "nx": nx, "ny": ny})


def analytics_message(message: Perf | Energy) -> str:
    """Format an analytics message for the client.

    PERF maps to key ``gpu`` (milliseconds, 3 decimals); ENERGY maps to key
    ``energy`` (scientific notation, 3 decimals).
    """
    if isinstance(message, Perf):
        return json.dumps(
            {"type": "analytics", "key": "gpu", "value": f"{message.step_ms_avg:.3f}"}
        )
    return json.dumps(
        {"type": "analytics", "key": "energy", "value": f"{message.value:.3e}"}
    )
