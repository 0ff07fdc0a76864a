from typing import Union

import numpy as np
from numpy.typing import NDArray

from mixsim.config import ShapeParams
from mixsim.exceptions import ConfigError, DomainError


ArrayOrFloat = Union[float, NDArray[np.floating]]


def _check_shape_params(K: float, S: float) -> None:
    if K <= 0:
        raise DomainError(f"K must be > 0, got {K}")
    if S <= 0:
        raise DomainError(f"S must be > 0, got {S}")


def beta_hill(
    x: ArrayOrFloat,
    K: float,
    S: float,
    B: float = 1.0,
) -> ArrayOrFloat:
    """
    Hill-type shape response ``B - K**S * B / (x**S + K**S)``.

    Evaluated in the equivalent form ``B * x**S / (x**S + K**S)`` so that
    ``beta_hill(0) == 0`` and ``beta_hill(K) == B / 2`` hold exactly.

    Parameters
    ----------
    x : float or NDArray
        Normalized exposure, expected in [0, 1].
    K : float
        Half-saturation point (> 0).
    S : float
        Slope (> 0). S < 1 gives a concave C-curve, S > 1 an S-curve with
        its inflection near K.
    B : float
        Ceiling. Note that at x = 1 the response is B * (1 - K**S / (1 + K**S)),
        strictly below B.

    Returns
    -------
    float or NDArray
        Response with the same shape as ``x``.

    Raises
    ------
    DomainError
        If any ``x < 0`` (fractional power of a negative base), or K <= 0,
        or S <= 0.
    """
    _check_shape_params(K, S)

    x_arr = np.asarray(x, dtype=np.float64)
    if np.any(np.isnan(x_arr)):
        raise DomainError("x contains NaN")
    if np.any(x_arr < 0):
        raise DomainError(f"x must be >= 0, got min {x_arr.min()}")

    x_S = x_arr**S
    K_S = K**S
    # K**S can underflow to 0 for tiny K; zero exposure still maps to zero
    result = B * np.divide(x_S, x_S + K_S, out=np.zeros_like(x_S), where=x_S > 0)

    if np.ndim(x) == 0:
        return float(result)
    return result


def apply_shape(x: ArrayOrFloat, params: ShapeParams) -> ArrayOrFloat:
    return beta_hill(x, K=params.K, S=params.S, B=params.B)


def shape_ceiling(params: ShapeParams) -> float:
    """Response at x = 1, the top of the normalized domain."""
    return float(beta_hill(1.0, K=params.K, S=params.S, B=params.B))


def compute_marginal_response(
    x: float,
    K: float,
    S: float,
    B: float = 1.0,
) -> float:
    """Derivative of ``beta_hill`` with respect to x."""
    _check_shape_params(K, S)
    if x < 0:
        raise DomainError(f"x must be >= 0, got {x}")

    if x == 0:
        # limit of S * K^S * x^(S-1) / (x^S + K^S)^2 as x -> 0
        if S < 1:
            return float("inf")
        if S == 1:
            return float(B / K)
        return 0.0

    K_S = K**S
    x_S = x**S
    return float(B * S * K_S * x ** (S - 1) / (K_S + x_S) ** 2)


def find_saturation_threshold(
    K: float,
    S: float,
    threshold: float = 0.9,
) -> float:
    """Exposure at which the response reaches ``threshold * B``."""
    _check_shape_params(K, S)
    if not 0 < threshold < 1:
        raise ConfigError(f"threshold must be in (0, 1), got {threshold}")

    return float(K * (threshold / (1 - threshold)) ** (1 / S))


def plot_shape_curves(
    shape_params: dict[str, ShapeParams],
    n_points: int = 100,
    figsize: tuple[int, int] = (10, 6),
    title: str = "Shape Curves by Channel",
) -> "matplotlib.figure.Figure":
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=figsize)
    x = np.linspace(0, 1, n_points)

    for name, params in shape_params.items():
        y = apply_shape(x, params)
        ax.plot(x, y, label=name, linewidth=2)

        if params.K <= 1:
            ax.scatter([params.K], [params.B / 2], marker="o", s=50, zorder=5)

    ax.set_xlabel("Normalized Exposure")
    ax.set_ylabel("Response")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)
    ax.set_xlim(0, 1)

    plt.tight_layout()
    return fig
