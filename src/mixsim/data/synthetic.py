"""
Synthetic exposure and price series generation.

Every generator takes its random source explicitly (an integer seed or a
``numpy.random.Generator``). There is no module-level random state, so
scenario runs executed side by side cannot interfere with each other.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Sequence, Union

import numpy as np
from numpy.typing import NDArray
from statsmodels.tsa.arima_process import ArmaProcess

from mixsim.config import ScenarioConfig
from mixsim.exceptions import ConfigError
from mixsim.timeseries import TimeSeries

logger = logging.getLogger(__name__)

SeedLike = Union[int, np.random.Generator]

# periods simulated and discarded before an ARMA sample is kept
ARMA_BURNIN = 100


def _as_generator(seed: SeedLike) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    if seed is None or int(seed) < 0:
        raise ConfigError(f"seed must be a non-negative integer or Generator, got {seed}")
    return np.random.default_rng(int(seed))


def spawn_generators(seed: int, count: int) -> list[np.random.Generator]:
    """Independent child generators derived from one scenario seed."""
    if count < 1:
        raise ConfigError(f"count must be >= 1, got {count}")
    children = np.random.SeedSequence(seed).spawn(count)
    return [np.random.default_rng(child) for child in children]


def generate_channel_series(
    n: int,
    amplitude: float,
    frequency_factor: float,
    noise_scale: float,
    seed: SeedLike,
    start_date: Union[date, str] = "2020-01-06",
    freq: str = "W-MON",
    name: str = "channel",
) -> TimeSeries:
    """
    Periodic exposure signal plus Gaussian noise.

    value[t] = amplitude * sin(frequency_factor * t) + noise_scale * N(0, 1)
    for t = 0..n-1.

    Parameters
    ----------
    n : int
        Number of periods.
    amplitude : float
        Amplitude of the sine component.
    frequency_factor : float
        Angular frequency (radians per period).
    noise_scale : float
        Standard deviation of the additive noise (>= 0).
    seed : int or np.random.Generator
        Random source. Identical integer seeds give bit-identical output.
    start_date, freq : optional
        Calendar for the returned series.
    name : str
        Series name.

    Returns
    -------
    TimeSeries
        Raw exposure series.
    """
    if n < 1:
        raise ConfigError(f"n must be >= 1, got {n}")
    if noise_scale < 0:
        raise ConfigError(f"noise_scale must be >= 0, got {noise_scale}")

    rng = _as_generator(seed)

    t = np.arange(n, dtype=np.float64)
    noise = rng.standard_normal(n)
    values = amplitude * np.sin(frequency_factor * t) + noise_scale * noise

    return TimeSeries.from_values(name, values, start_date=start_date, freq=freq)


def check_arma_stationary(ar_coeffs: Sequence[float]) -> None:
    """
    Raise ``ConfigError`` unless every AR polynomial root lies outside the
    unit circle.

    ``ar_coeffs`` follow the usual sign convention
    y[t] = ar[0] * y[t-1] + ar[1] * y[t-2] + ... + e[t].
    """
    process = ArmaProcess.from_coeffs(arcoefs=list(ar_coeffs))
    if not process.isstationary:
        moduli = np.abs(process.arroots)
        raise ConfigError(
            f"AR coefficients {list(ar_coeffs)} are non-stationary: "
            f"root moduli {np.round(moduli, 4).tolist()} must all exceed 1"
        )


def generate_price_series(
    n: int,
    ar_coeffs: Sequence[float],
    ma_coeffs: Sequence[float],
    noise_variance: float,
    seed: SeedLike,
    mean: float = 0.0,
    start_date: Union[date, str] = "2020-01-06",
    freq: str = "W-MON",
    name: str = "price",
) -> TimeSeries:
    """
    Simulate an ARMA(p, q) price series around ``mean``.

    Stationarity of the AR part is checked before any random draw.

    Raises
    ------
    ConfigError
        If the AR polynomial has a root inside or on the unit circle, if
        ``noise_variance < 0``, or if ``n < 1``.
    """
    if n < 1:
        raise ConfigError(f"n must be >= 1, got {n}")
    if noise_variance < 0:
        raise ConfigError(f"noise_variance must be >= 0, got {noise_variance}")
    check_arma_stationary(ar_coeffs)

    rng = _as_generator(seed)

    process = ArmaProcess.from_coeffs(
        arcoefs=list(ar_coeffs), macoefs=list(ma_coeffs)
    )
    sample = process.generate_sample(
        nsample=n,
        scale=float(np.sqrt(noise_variance)),
        distrvs=rng.standard_normal,
        burnin=ARMA_BURNIN,
    )
    values = mean + np.asarray(sample, dtype=np.float64)

    return TimeSeries.from_values(name, values, start_date=start_date, freq=freq)


@dataclass(frozen=True)
class ScenarioSeries:
    """Raw series of one scenario: one exposure series per channel plus price."""

    channels: dict[str, TimeSeries]
    price: TimeSeries


def generate_scenario_series(config: ScenarioConfig) -> ScenarioSeries:
    """
    Generate every raw series of a scenario.

    Each channel and the price series draw from their own child generator
    spawned from ``config.seed``, in channel order, price last.
    """
    rngs = spawn_generators(config.seed, len(config.channels) + 1)

    logger.info(
        "Generating %d periods for %d channels (seed=%d)",
        config.periods,
        len(config.channels),
        config.seed,
    )

    channels: dict[str, TimeSeries] = {}
    for channel, rng in zip(config.channels, rngs[:-1]):
        channels[channel.name] = generate_channel_series(
            n=config.periods,
            amplitude=channel.series.amplitude,
            frequency_factor=channel.series.frequency_factor,
            noise_scale=channel.series.noise_scale,
            seed=rng,
            start_date=config.start_date,
            freq=config.freq,
            name=channel.name,
        )
        logger.debug(
            "  %s: min=%.4f max=%.4f",
            channel.name,
            channels[channel.name].values.min(),
            channels[channel.name].values.max(),
        )

    price = generate_price_series(
        n=config.periods,
        ar_coeffs=config.price.ar_coeffs,
        ma_coeffs=config.price.ma_coeffs,
        noise_variance=config.price.noise_variance,
        seed=rngs[-1],
        mean=config.price.mean,
        start_date=config.start_date,
        freq=config.freq,
    )

    return ScenarioSeries(channels=channels, price=price)


def draw_noise(config: ScenarioConfig) -> NDArray[np.floating]:
    """
    Outcome noise for every generated period.

    Uses the generator spawned right after the price stream, so adding noise
    never shifts the exposure or price draws.
    """
    rng = spawn_generators(config.seed, len(config.channels) + 2)[-1]
    if config.noise.sd == 0:
        return np.zeros(config.periods, dtype=np.float64)
    return rng.normal(0.0, config.noise.sd, size=config.periods)


def step_series(
    n: int,
    on_periods: Sequence[int],
    level: float = 1.0,
    name: str = "channel",
    start_date: Union[date, str] = "2020-01-06",
    freq: str = "W-MON",
) -> TimeSeries:
    """Exposure that equals ``level`` on ``on_periods`` and 0 elsewhere."""
    values = np.zeros(n, dtype=np.float64)
    values[list(on_periods)] = level
    return TimeSeries.from_values(name, values, start_date=start_date, freq=freq)


def constant_series(
    n: int,
    value: float,
    name: str = "price",
    start_date: Union[date, str] = "2020-01-06",
    freq: str = "W-MON",
) -> TimeSeries:
    values: NDArray[np.floating] = np.full(n, value, dtype=np.float64)
    return TimeSeries.from_values(name, values, start_date=start_date, freq=freq)
