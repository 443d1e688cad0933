"""Streaming output for the wave engine."""

from wavestream.io.stream import (
    ENERGY_INTERVAL,
    EmitterState,
    FrameEmitter,
    stream_simulation,
)

__all__ = [
    "ENERGY_INTERVAL",
    "EmitterState",
    "FrameEmitter",
    "stream_simulation",
]
