"""Tests for simulation parameter resolution."""

import logging
import math

import pytest

from wavestream.core.config import (
    DEFAULTS,
    ConfigError,
    SimulationConfig,
    max_stable_dt,
    resolve_config,
)


class TestDefaults:
    """Tests for default handling."""

    def test_empty_options_use_defaults(self):
        """Every option should fall back to its default."""
        cfg = resolve_config({})
        assert cfg.nx == 512
        assert cfg.ny == 512
        assert cfg.frames_every == 60
        assert cfg.model == "homogeneous"

    def test_none_values_use_defaults(self):
        """None is treated the same as a missing option."""
        cfg = resolve_config({"nx": None, "c0": None})
        assert cfg.nx == DEFAULTS["nx"][1]
        assert cfg.c0 == DEFAULTS["c0"][1]

    def test_source_defaults_to_grid_center(self):
        """Unset source coordinates default to the grid center."""
        cfg = resolve_config({"nx": 100, "ny": 60})
        assert (cfg.sx, cfg.sy) == (50, 30)

    def test_source_coordinates_default_independently(self):
        """Only the missing coordinate is defaulted."""
        cfg = resolve_config({"nx": 100, "ny": 60, "sx": 10})
        assert (cfg.sx, cfg.sy) == (10, 30)

    def test_returns_frozen_config(self):
        cfg = resolve_config({})
        assert isinstance(cfg, SimulationConfig)
        with pytest.raises(AttributeError):
            cfg.nx = 10


class TestParsing:
    """Tests for value parsing."""

    def test_string_values_are_parsed(self):
        """Options given as strings are parsed to their expected types."""
        cfg = resolve_config({"nx": "64", "dx": "5.5", "model": "circle"})
        assert cfg.nx == 64
        assert isinstance(cfg.nx, int)
        assert cfg.dx == 5.5
        assert cfg.model == "circle"

    def test_integral_float_accepted_for_int(self):
        cfg = resolve_config({"nx": "64.0", "ny": 32.0})
        assert cfg.nx == 64
        assert cfg.ny == 32

    def test_unknown_option_rejected(self):
        """An unrecognized option name is an error."""
        with pytest.raises(ConfigError, match="bogus"):
            resolve_config({"bogus": 1})

    @pytest.mark.parametrize(
        "name,value",
        [("nx", "abc"), ("dx", "fast"), ("nx", "3.5"), ("c0", "nan"), ("steps", True)],
    )
    def test_unparsable_value_rejected(self, name, value):
        with pytest.raises(ConfigError, match=name):
            resolve_config({name: value})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_config({"nx": "abc"})


class TestValidation:
    """Tests for range validation."""

    @pytest.mark.parametrize(
        "options",
        [
            {"nx": 2},
            {"ny": 0},
            {"dx": 0},
            {"dt": -1e-3},
            {"c0": 0},
            {"cfl": 0},
            {"f0": 0},
            {"frames_every": 0},
            {"steps": -1},
            {"pml": -5},
        ],
    )
    def test_invalid_values_rejected(self, options):
        with pytest.raises(ConfigError):
            resolve_config(options)

    def test_zero_steps_allowed(self):
        assert resolve_config({"steps": 0}).steps == 0

    def test_zero_pml_allowed(self):
        assert resolve_config({"pml": 0}).pml == 0


class TestCFLClamp:
    """Tests for the CFL stability bound."""

    def test_max_stable_dt_formula(self):
        assert max_stable_dt(10.0, 3000.0, 0.5) == pytest.approx(
            0.5 * 10.0 / (math.sqrt(2.0) * 3000.0)
        )

    def test_stable_dt_kept(self):
        """A dt below the ceiling is never raised."""
        cfg = resolve_config({"dt": 1e-5})
        assert cfg.dt == 1e-5
        assert not cfg.dt_clamped

    def test_unstable_dt_clamped(self):
        """A dt above the ceiling is clamped down to it."""
        cfg = resolve_config({"dt": 0.1, "dx": 10.0, "c0": 3000.0, "cfl": 0.5})
        assert cfg.dt == pytest.approx(max_stable_dt(10.0, 3000.0, 0.5))
        assert cfg.requested_dt == 0.1
        assert cfg.dt_clamped

    def test_clamp_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="wavestream.core.config"):
            resolve_config({"dt": 1.0})
        assert "CFL" in caplog.text

    @pytest.mark.parametrize("dx", [0.5, 1.0, 10.0, 33.3])
    @pytest.mark.parametrize("c0", [340.0, 1500.0, 6000.0])
    @pytest.mark.parametrize("cfl", [0.1, 0.5, 0.9, 1.0])
    @pytest.mark.parametrize("dt", [1e-6, 1e-3, 1.0])
    def test_resolved_dt_always_stable(self, dx, c0, cfl, dt):
        """For all valid configurations dt <= cfl * dx / (sqrt(2) * c0)."""
        cfg = resolve_config({"dx": dx, "c0": c0, "cfl": cfl, "dt": dt})
        assert cfg.dt <= cfl * dx / (math.sqrt(2.0) * c0)


class TestDerived:
    """Tests for derived properties."""

    def test_shape_is_rows_by_columns(self):
        cfg = resolve_config({"nx": 40, "ny": 30})
        assert cfg.shape == (30, 40)

    def test_frame_bytes(self):
        cfg = resolve_config({"nx": 40, "ny": 30})
        assert cfg.frame_bytes == 40 * 30 * 4

    def test_to_dict_round_trips_names(self):
        cfg = resolve_config({})
        data = cfg.to_dict()
        assert set(DEFAULTS) <= set(data)
        assert data["requested_dt"] == cfg.requested_dt
