"""Core wave engine components."""

from wavestream.core.config import ConfigError, SimulationConfig, resolve_config
from wavestream.core.engine import (
    DeviceError,
    WaveEngine,
    get_gpu_info,
    has_gpu_support,
)
from wavestream.core.models import build_velocity_model
from wavestream.core.sponge import build_sponge_mask
from wavestream.core.waveforms import RickerWavelet, source_footprint

__all__ = [
    "SimulationConfig",
    "ConfigError",
    "resolve_config",
    "WaveEngine",
    "DeviceError",
    "has_gpu_support",
    "get_gpu_info",
    "build_velocity_model",
    "build_sponge_mask",
    "RickerWavelet",
    "source_footprint",
]
