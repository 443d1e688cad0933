"""Relay between a client connection and an engine process."""

from wavestream.relay.protocol import (
    ControlMessageError,
    Energy,
    Header,
    Perf,
    StartCommand,
    StopCommand,
    Unrecognized,
    parse_control,
    parse_line,
)
from wavestream.relay.session import FrameAssembler, RelaySession, terminate_process

__all__ = [
    "RelaySession",
    "FrameAssembler",
    "terminate_process",
    "ControlMessageError",
    "Header",
    "Perf",
    "Energy",
    "Unrecognized",
    "StartCommand",
    "StopCommand",
    "parse_line",
    "parse_control",
]
