"""Fixed-shape time series container shared by the generator and the assembler."""

from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pandas as pd
from numpy.typing import NDArray


SeriesKind = Literal["raw", "normalized", "transformed"]


@dataclass(frozen=True)
class TimeSeries:
    """
    Ordered sequence of (period, date, value) triples.

    Insertion order is temporal order: ``periods`` must be consecutive
    integers starting at a non-negative index, one per value.

    Attributes
    ----------
    name : str
        Series name (channel name, ``"price"``, ...).
    periods : NDArray
        Integer period indices, strictly increasing with no gaps.
    dates : pd.DatetimeIndex
        Timestamp for each period.
    values : NDArray
        Real values, one per period.
    kind : {"raw", "normalized", "transformed"}
        Provenance tag. Only ``"raw"`` series may enter a ``ModelPayload``.
    """

    name: str
    periods: NDArray[np.int64]
    dates: pd.DatetimeIndex
    values: NDArray[np.floating]
    kind: SeriesKind = field(default="raw")

    def __post_init__(self) -> None:
        periods = np.array(self.periods, dtype=np.int64)
        values = np.array(self.values, dtype=np.float64)
        dates = pd.DatetimeIndex(self.dates)

        if periods.ndim != 1 or values.ndim != 1:
            raise ValueError(f"{self.name}: periods and values must be 1-D")
        if not len(periods) == len(values) == len(dates):
            raise ValueError(
                f"{self.name}: length mismatch (periods={len(periods)}, "
                f"dates={len(dates)}, values={len(values)})"
            )
        if len(periods) > 0:
            if periods[0] < 0:
                raise ValueError(f"{self.name}: period indices must be >= 0")
            if np.any(np.diff(periods) != 1):
                raise ValueError(
                    f"{self.name}: period indices must be strictly increasing "
                    "with no gaps"
                )

        values.setflags(write=False)
        periods.setflags(write=False)

        # frozen dataclass: bypass __setattr__ for the coerced arrays
        object.__setattr__(self, "periods", periods)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "dates", dates)

    def __len__(self) -> int:
        return len(self.values)

    @classmethod
    def from_values(
        cls,
        name: str,
        values: NDArray[np.floating],
        start_date: "pd.Timestamp | str" = "2020-01-06",
        freq: str = "W-MON",
        kind: SeriesKind = "raw",
    ) -> "TimeSeries":
        """Build a series indexed 0..n-1 with a regular date range."""
        values = np.asarray(values, dtype=np.float64)
        n = len(values)
        return cls(
            name=name,
            periods=np.arange(n, dtype=np.int64),
            dates=pd.date_range(start=start_date, periods=n, freq=freq),
            values=values,
            kind=kind,
        )

    def with_values(
        self, values: NDArray[np.floating], kind: SeriesKind
    ) -> "TimeSeries":
        """Same periods and dates, new values and provenance tag."""
        return TimeSeries(
            name=self.name,
            periods=self.periods,
            dates=self.dates,
            values=values,
            kind=kind,
        )

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, index=self.dates, name=self.name)
