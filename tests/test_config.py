"""
Tests for scenario configuration.
"""

import json

import pytest
from pydantic import ValidationError

from mixsim.config import (
    CHANNEL_DEFAULTS,
    CarryoverParams,
    ChannelConfig,
    ScenarioConfig,
    ShapeParams,
    default_scenario_config,
    load_scenario_config,
    parse_scenario_config,
)
from mixsim.exceptions import ConfigError


def _channel(name: str, window_length: int = 4) -> dict:
    return {
        "name": name,
        "carryover": {"rate": 0.5, "window_length": window_length},
        "shape": {"K": 0.5},
    }


class TestParams:
    """Field-level validation of transform parameters."""

    @pytest.mark.parametrize("rate", [0.0, 1.0, -0.2, 1.3])
    def test_rate_outside_unit_interval(self, rate):
        with pytest.raises(ConfigError):
            CarryoverParams(rate=rate, window_length=4)

    def test_window_length_must_be_positive(self):
        with pytest.raises(ConfigError):
            CarryoverParams(rate=0.5, window_length=0)

    def test_negative_theta(self):
        with pytest.raises(ConfigError):
            CarryoverParams(algorithm="delayed", rate=0.5, theta=-1, window_length=4)

    @pytest.mark.parametrize("field", ["K", "S"])
    def test_non_positive_shape(self, field):
        kwargs = {"K": 0.5, "S": 1.0, field: 0.0}
        with pytest.raises(ConfigError):
            ShapeParams(**kwargs)

    def test_error_names_the_record(self):
        with pytest.raises(ConfigError, match="CarryoverParams"):
            CarryoverParams(rate=1.5, window_length=5)

    def test_nested_record_error_is_config_error(self):
        with pytest.raises(ConfigError):
            ChannelConfig(
                name="tv",
                carryover={"rate": 0.5, "window_length": 0},
                shape={"K": 0.5},
            )

    def test_params_are_frozen(self):
        params = CarryoverParams(rate=0.5, window_length=4)
        with pytest.raises(ValidationError):
            params.rate = 0.9


class TestScenarioConfig:

    def test_defaults(self):
        config = default_scenario_config()
        assert config.periods == 104
        assert config.channel_names == ["tv", "radio", "online"]
        assert config.window_length == 8

    def test_defaults_follow_channel_table(self):
        config = default_scenario_config(window_length=5)
        tv = config.channels[0]
        assert tv.carryover.algorithm == CHANNEL_DEFAULTS["tv"]["carryover"]["algorithm"]
        assert tv.shape.K == CHANNEL_DEFAULTS["tv"]["shape"]["K"]
        assert tv.carryover.window_length == 5

    def test_unknown_channel_uses_radio_defaults(self):
        config = default_scenario_config(channels=["search"])
        assert config.channels[0].shape.K == CHANNEL_DEFAULTS["radio"]["shape"]["K"]

    def test_window_length_must_be_shared(self):
        with pytest.raises(ConfigError, match="shared"):
            parse_scenario_config(
                {"periods": 20, "channels": [_channel("tv", 4), _channel("radio", 6)]}
            )

    def test_duplicate_channel_names(self):
        with pytest.raises(ConfigError, match="unique"):
            parse_scenario_config(
                {"periods": 20, "channels": [_channel("tv"), _channel("tv")]}
            )

    def test_no_channels(self):
        with pytest.raises(ConfigError):
            parse_scenario_config({"periods": 20, "channels": []})

    def test_bad_channel_name(self):
        with pytest.raises(ConfigError):
            parse_scenario_config({"periods": 20, "channels": [_channel("tv spot")]})

    def test_negative_noise_sd(self):
        with pytest.raises(ConfigError):
            parse_scenario_config(
                {"periods": 20, "noise": {"sd": -1}, "channels": [_channel("tv")]}
            )

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_scenario_config({"channels": [_channel("tv")]})

    def test_passes_through_parsed_config(self, small_scenario):
        assert parse_scenario_config(small_scenario) is small_scenario

    def test_explicit_construction(self):
        config = ScenarioConfig(
            periods=52,
            channels=[
                ChannelConfig(
                    name="tv",
                    carryover=CarryoverParams(rate=0.6, window_length=8),
                    shape=ShapeParams(K=0.5),
                )
            ],
        )
        assert config.window_length == 8
        assert config.noise.sd == pytest.approx(0.05)


class TestLoadScenarioConfig:

    def test_round_trip(self, small_scenario, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(small_scenario.model_dump_json(), encoding="utf-8")
        assert load_scenario_config(path) == small_scenario

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_scenario_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(
            json.dumps({"periods": 0, "channels": [_channel("tv")]}), encoding="utf-8"
        )
        with pytest.raises(ConfigError):
            load_scenario_config(path)
