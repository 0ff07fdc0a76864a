import numpy as np
from numpy.typing import NDArray

from mixsim.config import CarryoverParams
from mixsim.exceptions import ConfigError, WindowError


def _check_rate(rate: float) -> None:
    if not 0 < rate < 1:
        raise ConfigError(f"rate must be in (0, 1), got {rate}")


def _check_window_length(window_length: int) -> None:
    if window_length < 1:
        raise ConfigError(f"window_length must be >= 1, got {window_length}")


def geometric_weights(rate: float, window_length: int) -> NDArray[np.floating]:
    """Weight ``rate**l`` for lag l = 0..L-1 (l = 0 is the current period)."""
    _check_rate(rate)
    _check_window_length(window_length)

    lags = np.arange(window_length, dtype=np.float64)
    return rate**lags


def delayed_weights(
    rate: float, theta: float, window_length: int
) -> NDArray[np.floating]:
    """
    Weight ``rate**((l - theta)**2)`` for lag l = 0..L-1.

    The peak sits at lag ``theta``. ``theta == 0`` returns the geometric
    weights unchanged.
    """
    if theta < 0:
        raise ConfigError(f"theta must be >= 0, got {theta}")
    if theta == 0:
        return geometric_weights(rate, window_length)

    _check_rate(rate)
    _check_window_length(window_length)

    lags = np.arange(window_length, dtype=np.float64)
    return rate ** ((lags - theta) ** 2)


def carryover_weights(params: CarryoverParams) -> NDArray[np.floating]:
    """Lag weights for ``params.algorithm`` over ``params.window_length`` lags."""
    if params.algorithm == "delayed":
        return delayed_weights(params.rate, params.theta, params.window_length)
    return geometric_weights(params.rate, params.window_length)


def _weighted_average(
    lagged: NDArray[np.floating], weights: NDArray[np.floating]
) -> NDArray[np.floating]:
    # lagged[..., l] holds value[t - l]
    return lagged @ weights / weights.sum()


def _as_window(window: NDArray[np.floating]) -> NDArray[np.floating]:
    w = np.asarray(window, dtype=np.float64)
    if w.ndim != 1:
        raise WindowError(f"window must be 1-D, got shape {w.shape}")
    if w.size == 0:
        raise WindowError("window is empty")
    return w


def geometric_decay(window: NDArray[np.floating], rate: float) -> float:
    """
    Geometric carryover of one chronological trailing window.

    ``window`` is ordered oldest first; its last element is the current
    period. Output is sum(rate**l * value[t-l]) / sum(rate**l).

    rate -> 1 approaches the window mean; rate -> 0 approaches the current
    value.
    """
    w = _as_window(window)
    weights = geometric_weights(rate, len(w))
    return float(_weighted_average(w[::-1], weights))


def delayed_decay(window: NDArray[np.floating], rate: float, theta: float) -> float:
    """
    Delayed (peaked) carryover of one chronological trailing window.

    With ``theta == 0`` this is exactly ``geometric_decay(window, rate)``.
    """
    w = _as_window(window)
    weights = delayed_weights(rate, theta, len(w))
    return float(_weighted_average(w[::-1], weights))


def trailing_window(
    values: NDArray[np.floating], t: int, window_length: int
) -> NDArray[np.floating]:
    """
    Chronological window of ``window_length`` values ending at period ``t``.

    Raises
    ------
    WindowError
        If ``t < window_length - 1`` or ``t`` lies past the end of the series.
    """
    _check_window_length(window_length)
    x = np.asarray(values, dtype=np.float64)

    if t >= len(x) or t < 0:
        raise WindowError(f"period {t} is outside a series of length {len(x)}")
    if t < window_length - 1:
        raise WindowError(
            f"period {t} has {t + 1} periods of history, "
            f"window needs {window_length}"
        )
    return x[t - window_length + 1 : t + 1]


def lag_windows(
    values: NDArray[np.floating], window_length: int
) -> NDArray[np.floating]:
    """
    Lag-ordered trailing windows for every complete period.

    Row i corresponds to period t = window_length - 1 + i and column l holds
    ``values[t - l]``. A series shorter than the window yields an empty
    ``(0, window_length)`` matrix.
    """
    _check_window_length(window_length)
    x = np.asarray(values, dtype=np.float64)

    n_complete = len(x) - window_length + 1
    if n_complete <= 0:
        return np.empty((0, window_length), dtype=np.float64)

    windows = np.lib.stride_tricks.sliding_window_view(x, window_length)
    return np.ascontiguousarray(windows[:, ::-1])


def carryover_at(
    values: NDArray[np.floating], t: int, params: CarryoverParams
) -> float:
    """Carryover of the window ending at period ``t``."""
    window = trailing_window(values, t, params.window_length)
    weights = carryover_weights(params)
    return float(_weighted_average(window[::-1], weights))


def apply_carryover(
    values: NDArray[np.floating], params: CarryoverParams
) -> NDArray[np.floating]:
    """
    Carryover for every period with a complete trailing window.

    Returns ``max(0, n - L + 1)`` values; element i belongs to period
    ``L - 1 + i``. Leading periods without full history are dropped, not
    padded.
    """
    weights = carryover_weights(params)
    return _weighted_average(lag_windows(values, params.window_length), weights)


def apply_lagged_carryover(
    lagged: NDArray[np.floating], weights: NDArray[np.floating]
) -> NDArray[np.floating]:
    """Carryover of pre-built lag-ordered windows (last axis = lag)."""
    lagged = np.asarray(lagged, dtype=np.float64)
    if lagged.shape[-1] != len(weights):
        raise WindowError(
            f"windows have {lagged.shape[-1]} lags but {len(weights)} weights"
        )
    return _weighted_average(lagged, weights)


def rate_to_half_life(rate: float) -> float:
    _check_rate(rate)
    return float(np.log(0.5) / np.log(rate))


def get_effective_window(
    rate: float,
    threshold: float = 0.95,
) -> int:
    """Smallest window length whose geometric weights capture ``threshold`` of the infinite sum."""
    _check_rate(rate)
    if not 0 < threshold < 1:
        raise ConfigError(f"threshold must be in (0, 1), got {threshold}")

    n = np.ceil(np.log(1 - threshold) / np.log(rate))
    return int(max(1, n))


def plot_carryover_weights(
    params: dict[str, CarryoverParams],
    figsize: tuple[int, int] = (10, 6),
    title: str = "Carryover Weights by Channel",
) -> "matplotlib.figure.Figure":
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=figsize)
    max_lag = 1

    for name, p in params.items():
        weights = carryover_weights(p)
        weights = weights / weights.sum()
        lags = np.arange(p.window_length)
        max_lag = max(max_lag, p.window_length)
        ax.plot(lags, weights, marker="o", label=name, linewidth=2, markersize=6)

    ax.set_xlabel("Lag (periods)")
    ax.set_ylabel("Weight (normalized)")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.set_xticks(np.arange(max_lag))

    plt.tight_layout()
    return fig
