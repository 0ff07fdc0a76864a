import numpy as np
from numpy.typing import NDArray

from mixsim.timeseries import TimeSeries
from mixsim.exceptions import DomainError


def min_max_scale(values: NDArray[np.floating]) -> NDArray[np.floating]:
    """
    Rescale ``values`` to [0, 1] using the min and max of the whole array.

    Raises
    ------
    DomainError
        If the array is empty, non-finite or constant (max == min).
    """
    x = np.asarray(values, dtype=np.float64)
    if x.size == 0:
        raise DomainError("cannot normalize an empty series")
    if not np.all(np.isfinite(x)):
        raise DomainError("cannot normalize a series with non-finite values")

    lo = x.min()
    hi = x.max()
    if hi == lo:
        raise DomainError(f"cannot normalize a constant series (value={lo})")

    return (x - lo) / (hi - lo)


def normalize(series: TimeSeries) -> TimeSeries:
    """
    Min-max normalize a full series to [0, 1].

    The scale is computed over the entire series rather than per window,
    so every downstream windowed transform sees the same scale.
    """
    return series.with_values(min_max_scale(series.values), kind="normalized")
