"""Two-channel streaming output for the wave engine.

The engine talks to its host over two independent channels:

Text channel (one message per line)::

    HEADER nx=<int> ny=<int> dt=<float> frames_every=<int>
    PERF step_ms_avg=<float>
    ENERGY val=<float, scientific notation>

Binary channel:
    A sequence of fixed-size frames, each exactly ``nx * ny * 4`` bytes:
    the field snapshot as row-major little-endian float32. There are no
    boundary markers; the frame size follows from the header.

The emitter performs no flow control. Writes block when the consumer stops
draining the channel.

Example:
    >>> import io, sys
    >>> emitter = FrameEmitter(sys.stderr, io.BytesIO())
    >>> stream_simulation(engine, emitter, steps=1000)  # doctest: +SKIP
"""

from __future__ import annotations

import enum
import logging
import time
from typing import IO, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from wavestream.core.config import SimulationConfig

if TYPE_CHECKING:
    from wavestream.core.engine import WaveEngine

logger = logging.getLogger(__name__)

ENERGY_INTERVAL = 100
FRAME_DTYPE = np.dtype("<f4")


class EmitterState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    HEADER_SENT = "header_sent"
    STREAMING = "streaming"
    TERMINATED = "terminated"


def format_header(config: SimulationConfig) -> str:
    return (
        f"HEADER nx={config.nx} ny={config.ny} dt={config.dt!r} "
        f"frames_every={config.frames_every}"
    )


def format_perf(step_ms_avg: float) -> str:
    return f"PERF step_ms_avg={step_ms_avg:.4f}"


def format_energy(energy: float) -> str:
    return f"ENERGY val={energy:.6e}"


class FrameEmitter:
    """Writes header, analytics and field frames to the two output channels.

    Args:
        text_stream: Line-oriented text channel (normally stderr)
        binary_stream: Raw byte channel (normally stdout's buffer)

    State machine::

        UNINITIALIZED -> HEADER_SENT -> STREAMING -> TERMINATED

    The header may only be sent once; frames and analytics require it.
    """

    def __init__(self, text_stream: IO[str], binary_stream: IO[bytes]):
        self._text = text_stream
        self._binary = binary_stream
        self._state = EmitterState.UNINITIALIZED
        self._shape: tuple[int, int] | None = None
        self.frames_sent = 0

    @property
    def state(self) -> EmitterState:
        return self._state

    def _write_line(self, line: str) -> None:
        self._text.write(line + "\n")
        self._text.flush()

    def _require_open(self, what: str) -> None:
        if self._state is EmitterState.UNINITIALIZED:
            raise RuntimeError(f"Cannot send {what} before the header")
        if self._state is EmitterState.TERMINATED:
            raise RuntimeError(f"Cannot send {what} after the stream is closed")

    def send_header(self, config: SimulationConfig) -> None:
        """Announce grid size, time step and frame interval."""
        if self._state is not EmitterState.UNINITIALIZED:
            raise RuntimeError(f"Header already sent (state={self._state.value})")
        self._shape = config.shape
        self._write_line(format_header(config))
        self._state = EmitterState.HEADER_SENT

    def send_frame(self, field: NDArray[np.floating]) -> None:
        """Write one full-field snapshot to the binary channel.

        Raises:
            ValueError: If the field shape doesn't match the header.
            RuntimeError: If called before the header or after close().
        """
        self._require_open("frame")
        if field.shape != self._shape:
            raise ValueError(
                f"Frame shape {field.shape} doesn't match header shape {self._shape}"
            )
        payload = np.ascontiguousarray(field, dtype=FRAME_DTYPE).tobytes()
        self._binary.write(payload)
        self._binary.flush()
        self.frames_sent += 1
        self._state = EmitterState.STREAMING

    def send_analytics(self, step_ms_avg: float, energy: float) -> None:
        """Write one PERF line and one ENERGY line."""
        self._require_open("analytics")
        self._write_line(format_perf(step_ms_avg))
        self._write_line(format_energy(energy))
        self._state = EmitterState.STREAMING

    def close(self) -> None:
        self._state = EmitterState.TERMINATED


def stream_simulation(
    engine: WaveEngine,
    emitter: FrameEmitter,
    steps: int | None = None,
    frames_every: int | None = None,
    energy_every: int = ENERGY_INTERVAL,
) -> int:
    """Run the engine loop, emitting frames and analytics as it goes.

    Each iteration advances the engine one step (update, injection, rotation
    and device synchronize), then:

    - every ``energy_every`` steps, emits the average step wall time of the
      window and the field energy, and resets the timing window;
    - every ``frames_every`` steps, emits the current field.

    Args:
        engine: Engine to advance
        emitter: Output channels; the header is sent here if not yet sent
        steps: Step budget (default: ``engine.config.steps``)
        frames_every: Frame interval (default: ``engine.config.frames_every``)
        energy_every: Analytics window in steps

    Returns:
        Number of steps completed. Fewer than ``steps`` when the consumer
        closed the binary or text channel.
    """
    config = engine.config
    steps = config.steps if steps is None else steps
    frames_every = config.frames_every if frames_every is None else frames_every

    if emitter.state is EmitterState.UNINITIALIZED:
        emitter.send_header(config)

    window_seconds = 0.0
    window_steps = 0
    completed = 0

    try:
        for step in range(steps):
            start = time.perf_counter()
            engine.step()
            window_seconds += time.perf_counter() - start
            window_steps += 1
            completed = step + 1

            if completed % energy_every == 0:
                step_ms_avg = 1e3 * window_seconds / window_steps
                emitter.send_analytics(step_ms_avg, engine.energy())
                window_seconds = 0.0
                window_steps = 0

            if completed % frames_every == 0:
                emitter.send_frame(engine.get_field())
    except BrokenPipeError:
        logger.info("Consumer closed the stream after %d steps", completed)
    finally:
        emitter.close()

    return completed
