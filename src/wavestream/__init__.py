"""
wavestream - real-time 2D acoustic wave simulation streaming.

Main exports:
- SimulationConfig, resolve_config: Parameter resolution with CFL clamping
- WaveEngine: Device-resident time-stepping engine (PyTorch)
- build_velocity_model: Named velocity presets
- build_sponge_mask: Absorbing sponge coefficients
- RickerWavelet: Band-limited point source
- FrameEmitter, stream_simulation: Two-channel output protocol
- RelaySession: Per-client engine process owner and frame reassembler
"""

from wavestream.core.config import (
    ConfigError,
    SimulationConfig,
    max_stable_dt,
    resolve_config,
)
from wavestream.core.engine import (
    DeviceError,
    WaveEngine,
    get_gpu_info,
    has_gpu_support,
)
from wavestream.core.models import VELOCITY_MODELS, build_velocity_model
from wavestream.core.sponge import build_sponge_mask
from wavestream.core.waveforms import RickerWavelet
from wavestream.io.stream import EmitterState, FrameEmitter, stream_simulation
from wavestream.relay import RelaySession

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "SimulationConfig",
    "ConfigError",
    "resolve_config",
    "max_stable_dt",
    # Engine
    "WaveEngine",
    "DeviceError",
    "has_gpu_support",
    "get_gpu_info",
    "VELOCITY_MODELS",
    "build_velocity_model",
    "build_sponge_mask",
    "RickerWavelet",
    # Streaming
    "FrameEmitter",
    "EmitterState",
    "stream_simulation",
    # Relay
    "RelaySession",
]
