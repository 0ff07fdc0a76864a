"""
Design assembly: ground-truth outcome and the inference payload.

Two products come out of one run and they are built from different inputs:

- The **clean dataset** (ground truth) uses *transformed* exposure:
  raw -> normalize -> carryover -> shape, summed with intercept, control and
  noise into the outcome.
- The **ModelPayload** uses *raw* lag windows only. The inference engine must
  rediscover carryover and shape parameters from raw exposure and the
  outcome; handing it transformed values would turn inference into a
  readback. ``build_payload`` therefore rejects any series whose provenance
  tag is not ``"raw"``.

Periods without a complete trailing window (t < L - 1) are dropped from
both products.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from mixsim.config import ChannelConfig, ScenarioConfig, parse_scenario_config
from mixsim.data.synthetic import draw_noise, generate_scenario_series
from mixsim.exceptions import ConfigError, DomainError
from mixsim.timeseries import TimeSeries
from mixsim.transforms.adstock import apply_carryover, lag_windows
from mixsim.transforms.saturation import apply_shape
from mixsim.transforms.scaling import normalize

logger = logging.getLogger(__name__)


def _readonly(a: NDArray, dtype=np.float64) -> NDArray:
    out = np.array(a, dtype=dtype)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class DesignRow:
    """
    One retained period (t >= L - 1) of an assembled run.

    Attributes
    ----------
    period : int
        Period index t.
    date : pd.Timestamp
        Calendar date of period t.
    raw_windows : dict[str, NDArray]
        Per channel, the raw lag window of length L (element l = value[t - l]).
    responses : dict[str, float]
        Per channel, the normalized, carried-over, shaped response.
    control : float
        Control (price) value at t.
    noise : float
        Noise sample at t.
    outcome : float
        intercept + sum(responses) + control_coef * control + noise.
    """

    period: int
    date: pd.Timestamp
    raw_windows: dict[str, NDArray[np.floating]]
    responses: dict[str, float]
    control: float
    noise: float
    outcome: float


@dataclass(frozen=True)
class ModelPayload:
    """
    Fixed-shape numeric bundle handed to the inference engine.

    ``outcome[i]``, ``raw_tensor[i]`` and ``control_matrix[i]`` all refer to
    the same period. ``raw_tensor[i, c, l]`` is the raw exposure of channel c
    at lag ``lag_indices[l]`` behind that period. Arrays are read-only, so a
    failed inference call can be retried with the very same object.
    """

    n: int
    outcome: NDArray[np.floating]
    max_lag: int
    num_channels: int
    lag_indices: NDArray[np.int64]
    raw_tensor: NDArray[np.floating]
    num_controls: int
    control_matrix: NDArray[np.floating]
    channel_names: tuple[str, ...] = field(default=())
    control_names: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        outcome = _readonly(self.outcome)
        lag_indices = _readonly(self.lag_indices, dtype=np.int64)
        raw_tensor = _readonly(self.raw_tensor)
        control_matrix = _readonly(self.control_matrix)

        if outcome.shape != (self.n,):
            raise ValueError(f"outcome has shape {outcome.shape}, expected ({self.n},)")
        if self.max_lag < 1:
            raise ValueError(f"max_lag must be >= 1, got {self.max_lag}")
        if not np.array_equal(lag_indices, np.arange(self.max_lag)):
            raise ValueError("lag_indices must be 0..max_lag-1")
        expected = (self.n, self.num_channels, self.max_lag)
        if raw_tensor.shape != expected:
            raise ValueError(f"raw_tensor has shape {raw_tensor.shape}, expected {expected}")
        if control_matrix.shape != (self.n, self.num_controls):
            raise ValueError(
                f"control_matrix has shape {control_matrix.shape}, "
                f"expected ({self.n}, {self.num_controls})"
            )

        channel_names = tuple(self.channel_names) or tuple(
            f"channel_{i}" for i in range(self.num_channels)
        )
        control_names = tuple(self.control_names) or tuple(
            f"control_{i}" for i in range(self.num_controls)
        )
        if len(channel_names) != self.num_channels:
            raise ValueError("channel_names does not match num_channels")
        if len(control_names) != self.num_controls:
            raise ValueError("control_names does not match num_controls")

        object.__setattr__(self, "outcome", outcome)
        object.__setattr__(self, "lag_indices", lag_indices)
        object.__setattr__(self, "raw_tensor", raw_tensor)
        object.__setattr__(self, "control_matrix", control_matrix)
        object.__setattr__(self, "channel_names", channel_names)
        object.__setattr__(self, "control_names", control_names)

    def to_dict(self) -> dict:
        """Engine-facing record with the fixed contract field names."""
        return {
            "N": self.n,
            "outcome": self.outcome,
            "maxLag": self.max_lag,
            "numChannels": self.num_channels,
            "lagIndices": self.lag_indices,
            "rawTensor": self.raw_tensor,
            "numControls": self.num_controls,
            "controlMatrix": self.control_matrix,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping,
        channel_names: Sequence[str] = (),
        control_names: Sequence[str] = (),
    ) -> "ModelPayload":
        return cls(
            n=int(data["N"]),
            outcome=data["outcome"],
            max_lag=int(data["maxLag"]),
            num_channels=int(data["numChannels"]),
            lag_indices=data["lagIndices"],
            raw_tensor=data["rawTensor"],
            num_controls=int(data["numControls"]),
            control_matrix=data["controlMatrix"],
            channel_names=tuple(channel_names),
            control_names=tuple(control_names),
        )


@dataclass(frozen=True)
class SimulationResult:
    """Everything one assembled run produces."""

    rows: list[DesignRow]
    dataset: pd.DataFrame
    payload: ModelPayload
    config: Optional[ScenarioConfig] = None

    @property
    def n_rows(self) -> int:
        return len(self.rows)


def _check_aligned(raw: Mapping[str, TimeSeries], control: TimeSeries) -> None:
    for name, series in raw.items():
        if not np.array_equal(series.periods, control.periods):
            raise ConfigError(
                f"series '{name}' covers different periods than the control series"
            )


def _shared_window_length(
    channels: Sequence[ChannelConfig], window_length: Optional[int]
) -> int:
    lengths = {c.carryover.window_length for c in channels}
    if window_length is not None:
        lengths.add(window_length)
    if len(lengths) != 1:
        raise ConfigError(
            f"window_length must be shared across channels, got {sorted(lengths)}"
        )
    return lengths.pop()


def build_payload(
    raw: Mapping[str, TimeSeries],
    control: TimeSeries,
    outcome: NDArray[np.floating],
    window_length: int,
    channel_names: Optional[Sequence[str]] = None,
) -> ModelPayload:
    """
    Build the inference payload from raw, untransformed series.

    Parameters
    ----------
    raw : Mapping[str, TimeSeries]
        Raw exposure per channel. Every series must carry ``kind="raw"``.
    control : TimeSeries
        Raw control series (one control).
    outcome : NDArray
        Outcome for every retained period, i.e. ``n - L + 1`` values.
    window_length : int
        Shared window length L.
    channel_names : sequence of str, optional
        Channel order in the tensor. Defaults to the mapping order.

    Raises
    ------
    DomainError
        If any series is normalized or transformed.
    ConfigError
        If series are misaligned or the outcome length is wrong.
    """
    names = list(channel_names) if channel_names is not None else list(raw)

    for name in names:
        if raw[name].kind != "raw":
            raise DomainError(
                f"payload requires raw exposure, channel '{name}' is {raw[name].kind}"
            )
    if control.kind != "raw":
        raise DomainError(f"payload requires a raw control series, got {control.kind}")
    _check_aligned({n: raw[n] for n in names}, control)

    n_rows = max(0, len(control) - window_length + 1)
    outcome = np.asarray(outcome, dtype=np.float64)
    if outcome.shape != (n_rows,):
        raise ConfigError(
            f"outcome has {outcome.shape[0]} values, expected {n_rows} "
            f"(n={len(control)}, L={window_length})"
        )

    tensor = np.stack([lag_windows(raw[name].values, window_length) for name in names], axis=1)
    control_matrix = control.values[window_length - 1 :].reshape(-1, 1)

    return ModelPayload(
        n=n_rows,
        outcome=outcome,
        max_lag=window_length,
        num_channels=len(names),
        lag_indices=np.arange(window_length),
        raw_tensor=tensor,
        num_controls=1,
        control_matrix=control_matrix,
        channel_names=tuple(names),
        control_names=(control.name,),
    )


def channel_responses(
    raw: TimeSeries, channel: ChannelConfig
) -> NDArray[np.floating]:
    """Normalize, carry over and shape one channel; one value per retained period."""
    normalized = normalize(raw)
    carried = apply_carryover(normalized.values, channel.carryover)
    return np.asarray(apply_shape(carried, channel.shape), dtype=np.float64)


def assemble_design(
    raw: Mapping[str, TimeSeries],
    control: TimeSeries,
    channels: Sequence[ChannelConfig],
    intercept: float = 0.0,
    control_coef: float = 0.0,
    noise: Optional[NDArray[np.floating]] = None,
    window_length: Optional[int] = None,
) -> SimulationResult:
    """
    Build the ground-truth dataset and the raw inference payload.

    outcome[t] = intercept + sum_c response_c[t] + control_coef * control[t]
                 + noise[t]
    for every period t with a complete window in every channel.

    Parameters
    ----------
    raw : Mapping[str, TimeSeries]
        Raw exposure per channel name.
    control : TimeSeries
        Control (price) series, same periods as the exposures.
    channels : sequence of ChannelConfig
        Transform parameters per channel; defines the channel order.
    intercept : float
        Intercept tau.
    control_coef : float
        Control coefficient gamma.
    noise : NDArray, optional
        One noise sample per generated period. Zeros when omitted.
    window_length : int, optional
        Shared window length; must agree with every channel's carryover.

    Returns
    -------
    SimulationResult
        Rows, the clean dataset (date, outcome, response_<channel>, control,
        noise) and the payload. A series shorter than the window gives an
        empty result, not an error.
    """
    L = _shared_window_length(channels, window_length)
    names = [c.name for c in channels]

    missing = [name for name in names if name not in raw]
    if missing:
        raise ConfigError(f"no raw series for channels {missing}")
    _check_aligned({name: raw[name] for name in names}, control)

    n = len(control)
    if noise is None:
        noise = np.zeros(n, dtype=np.float64)
    noise = np.asarray(noise, dtype=np.float64)
    if noise.shape != (n,):
        raise ConfigError(f"noise has shape {noise.shape}, expected ({n},)")

    n_rows = max(0, n - L + 1)
    retained = slice(L - 1, None)

    responses: dict[str, NDArray[np.floating]] = {}
    for channel in channels:
        if n_rows == 0:
            responses[channel.name] = np.empty(0, dtype=np.float64)
            continue
        responses[channel.name] = channel_responses(raw[channel.name], channel)

    control_kept = control.values[retained]
    noise_kept = noise[retained]
    outcome = np.full(n_rows, float(intercept), dtype=np.float64)
    for name in names:
        outcome = outcome + responses[name]
    outcome = outcome + control_coef * control_kept + noise_kept

    payload = build_payload(raw, control, outcome, L, channel_names=names)

    periods = control.periods[retained]
    dates = control.dates[retained]
    rows = [
        DesignRow(
            period=int(periods[i]),
            date=dates[i],
            raw_windows={name: payload.raw_tensor[i, c] for c, name in enumerate(names)},
            responses={name: float(responses[name][i]) for name in names},
            control=float(control_kept[i]),
            noise=float(noise_kept[i]),
            outcome=float(outcome[i]),
        )
        for i in range(n_rows)
    ]

    dataset = pd.DataFrame({"date": dates, "outcome": outcome})
    for name in names:
        dataset[f"response_{name}"] = responses[name]
    dataset["control"] = control_kept
    dataset["noise"] = noise_kept

    logger.info(
        "Assembled %d of %d periods (L=%d, channels=%s)", n_rows, n, L, ", ".join(names)
    )

    return SimulationResult(rows=rows, dataset=dataset, payload=payload)


def simulate_scenario(config: "ScenarioConfig | dict") -> SimulationResult:
    """Generate the raw series of a scenario and assemble its design."""
    config = parse_scenario_config(config)

    series = generate_scenario_series(config)
    noise = draw_noise(config)

    result = assemble_design(
        raw=series.channels,
        control=series.price,
        channels=config.channels,
        intercept=config.intercept,
        control_coef=config.control_coef,
        noise=noise,
        window_length=config.window_length,
    )
    return SimulationResult(
        rows=result.rows, dataset=result.dataset, payload=result.payload, config=config
    )


def run_scenarios(
    configs: Sequence["ScenarioConfig | dict"],
    max_workers: Optional[int] = None,
) -> list[SimulationResult]:
    """
    Run independent scenarios (e.g. a parameter sweep) in a process pool.

    Each run is a pure function of its configuration, so results are the
    same as running them one by one, in input order.
    """
    parsed = [parse_scenario_config(c) for c in configs]
    if max_workers == 1 or len(parsed) <= 1:
        return [simulate_scenario(c) for c in parsed]

    with ProcessPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(simulate_scenario, parsed))
