"""Scenario configuration: pydantic models for every tunable parameter of a run."""

import json
from datetime import date
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from mixsim.exceptions import ConfigError


CarryoverAlgorithm = Literal["geometric", "delayed"]

DEFAULT_CHANNELS = ["tv", "radio", "online"]


class ConfigModel(BaseModel):
    """Base for configuration records: invalid fields raise ``ConfigError``."""

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigError(f"invalid {type(self).__name__}:\n{e}") from e


class CarryoverParams(ConfigModel):
    """
    Carryover (adstock) parameters for one channel.

    ``theta`` is only meaningful for the delayed algorithm; geometric decay
    ignores it.
    """

    model_config = {"frozen": True}

    algorithm: CarryoverAlgorithm = "geometric"
    rate: float = Field(gt=0, lt=1, description="Retention rate per period")
    theta: float = Field(default=0.0, ge=0, description="Lag of peak effect")
    window_length: int = Field(ge=1, description="Trailing window width L")


class ShapeParams(ConfigModel):
    """
    Hill-type saturation parameters.

    ``K`` is the half-saturation point on the normalized scale, ``S`` the
    slope and ``B`` the ceiling. S and K are only weakly identified jointly;
    hold S at 1 when the data cannot separate them.
    """

    model_config = {"frozen": True}

    K: float = Field(gt=0, description="Half-saturation point")
    S: float = Field(default=1.0, gt=0, description="Slope")
    B: float = Field(default=1.0, description="Ceiling (beta)")


class ChannelSeriesConfig(ConfigModel):
    """Periodic-plus-noise exposure generator settings."""

    model_config = {"frozen": True}

    amplitude: float = 1.0
    frequency_factor: float = 0.5
    noise_scale: float = Field(default=0.3, ge=0)


class ChannelConfig(ConfigModel):
    """Everything that defines one channel in a scenario."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    series: ChannelSeriesConfig = Field(default_factory=ChannelSeriesConfig)
    carryover: CarryoverParams
    shape: ShapeParams


class PriceConfig(ConfigModel):
    """ARMA settings for the price (control) series."""

    model_config = {"frozen": True}

    ar_coeffs: list[float] = Field(default_factory=lambda: [0.8, -0.2])
    ma_coeffs: list[float] = Field(default_factory=lambda: [0.2])
    noise_variance: float = Field(default=0.1, ge=0)
    mean: float = 5.0


class NoiseConfig(ConfigModel):
    """Observation noise added to the outcome."""

    model_config = {"frozen": True}

    distribution: Literal["normal"] = "normal"
    sd: float = Field(default=0.05, ge=0)


class ScenarioConfig(ConfigModel):
    """
    One complete simulation run.

    A run is a pure function of this object: generation seed, per-channel
    generator and transform parameters, shared window length, and the
    composition terms (intercept, control coefficient, noise).

    Example
    -------
    >>> config = ScenarioConfig(
    ...     periods=104,
    ...     seed=7,
    ...     channels=[
    ...         ChannelConfig(
    ...             name="tv",
    ...             carryover=CarryoverParams(rate=0.6, window_length=8),
    ...             shape=ShapeParams(K=0.5, S=1.0, B=1.0),
    ...         )
    ...     ],
    ... )
    """

    periods: int = Field(ge=1, description="Number of generated periods n")
    seed: int = Field(default=42, ge=0)
    start_date: date = Field(default_factory=lambda: date(2020, 1, 6))
    freq: str = "W-MON"

    intercept: float = 0.0
    control_coef: float = 0.0
    noise: NoiseConfig = Field(default_factory=NoiseConfig)

    price: PriceConfig = Field(default_factory=PriceConfig)
    channels: list[ChannelConfig] = Field(min_length=1)

    @field_validator("channels")
    @classmethod
    def channel_names_unique(cls, v: list[ChannelConfig]) -> list[ChannelConfig]:
        names = [c.name for c in v]
        if len(set(names)) != len(names):
            raise ValueError(f"channel names must be unique, got {names}")
        return v

    @model_validator(mode="after")
    def window_length_shared(self) -> "ScenarioConfig":
        """All channels in one run share the same window length L."""
        lengths = {c.carryover.window_length for c in self.channels}
        if len(lengths) > 1:
            raise ValueError(
                f"window_length must be shared across channels, got {sorted(lengths)}"
            )
        return self

    @property
    def window_length(self) -> int:
        return self.channels[0].carryover.window_length

    @property
    def channel_names(self) -> list[str]:
        return [c.name for c in self.channels]


CHANNEL_DEFAULTS: dict[str, dict[str, Any]] = {
    "tv": {
        "series": {"amplitude": 1.0, "frequency_factor": 0.3, "noise_scale": 0.25},
        "carryover": {"algorithm": "delayed", "rate": 0.7, "theta": 2.0},
        "shape": {"K": 0.6, "S": 2.0, "B": 1.5},
        "description": "Slow decay with delayed peak.",
    },
    "radio": {
        "series": {"amplitude": 0.8, "frequency_factor": 0.6, "noise_scale": 0.3},
        "carryover": {"algorithm": "geometric", "rate": 0.5, "theta": 0.0},
        "shape": {"K": 0.5, "S": 1.0, "B": 1.0},
        "description": "Moderate decay, concave response.",
    },
    "online": {
        "series": {"amplitude": 0.6, "frequency_factor": 1.1, "noise_scale": 0.35},
        "carryover": {"algorithm": "geometric", "rate": 0.3, "theta": 0.0},
        "shape": {"K": 0.3, "S": 2.5, "B": 0.8},
        "description": "Fast decay, quick saturation.",
    },
}


def default_scenario_config(
    periods: int = 104,
    seed: int = 42,
    window_length: int = 8,
    channels: Optional[list[str]] = None,
) -> ScenarioConfig:
    """Scenario built from ``CHANNEL_DEFAULTS`` (tv, radio, online)."""
    channels = channels or DEFAULT_CHANNELS

    channel_configs = []
    for name in channels:
        defaults = CHANNEL_DEFAULTS.get(name, CHANNEL_DEFAULTS["radio"])
        channel_configs.append(
            {
                "name": name,
                "series": defaults["series"],
                "carryover": {**defaults["carryover"], "window_length": window_length},
                "shape": defaults["shape"],
            }
        )

    return parse_scenario_config(
        {
            "periods": periods,
            "seed": seed,
            "intercept": 2.0,
            "control_coef": -0.3,
            "channels": channel_configs,
        }
    )


def parse_scenario_config(data: Union[dict, ScenarioConfig]) -> ScenarioConfig:
    """
    Validate a raw mapping into a ``ScenarioConfig``.

    Raises
    ------
    ConfigError
        If any field is missing or out of range.
    """
    if isinstance(data, ScenarioConfig):
        return data
    try:
        return ScenarioConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid scenario configuration:\n{e}") from e


def load_scenario_config(path: Union[str, Path]) -> ScenarioConfig:
    """Read a scenario configuration from a JSON file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e
    return parse_scenario_config(data)
