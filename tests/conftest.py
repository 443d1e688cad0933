"""Pytest configuration for the wavestream test suite."""

import os

import pytest

# PyTorch may initialize more than one OpenMP runtime in the same process on
# some platforms. This must be set before torch is imported.
os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")


@pytest.fixture
def small_options():
    """Option set for a small, fast grid."""
    return {
        "nx": 32,
        "ny": 32,
        "dx": 10.0,
        "dt": 0.001,
        "steps": 200,
        "frames_every": 50,
        "pml": 6,
        "c0": 3000.0,
        "amp": 1.0,
        "f0": 10.0,
    }


@pytest.fixture
def small_config(small_options):
    """Resolved configuration for a small, fast grid."""
    from wavestream.core.config import resolve_config

    return resolve_config(small_options)
