"""
mixsim: synthetic media-mix data with known carryover and shape parameters.

Generates exposure and price series, builds a ground-truth outcome from
normalized, carried-over and shaped exposure, and hands an inference engine
the raw lag windows it needs to recover those parameters.
"""

from mixsim.config import (
    CarryoverParams,
    ChannelConfig,
    ScenarioConfig,
    ShapeParams,
    default_scenario_config,
    load_scenario_config,
    parse_scenario_config,
)
from mixsim.exceptions import (
    ConfigError,
    DomainError,
    InferenceUnavailable,
    MixSimError,
    WindowError,
)
from mixsim.timeseries import TimeSeries

__version__ = "0.1.0"

__all__ = [
    "CarryoverParams",
    "ChannelConfig",
    "ScenarioConfig",
    "ShapeParams",
    "default_scenario_config",
    "load_scenario_config",
    "parse_scenario_config",
    "ConfigError",
    "DomainError",
    "InferenceUnavailable",
    "MixSimError",
    "WindowError",
    "TimeSeries",
]
