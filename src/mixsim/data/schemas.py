"""Pandera schemas for persisted datasets."""

import pandera as pa
from pandera.typing import Series


class CleanDatasetFrame(pa.DataFrameModel):
    """
    Pandera schema for the persisted ground-truth dataset.

    One row per retained period; one ``response_<channel>`` column per channel.

    Example
    -------
    >>> df = pd.read_csv("clean.csv", parse_dates=["date"])
    >>> CleanDatasetFrame.validate(df)  # Raises if invalid
    """

    date: Series[pa.DateTime] = pa.Field(description="Period start date")
    outcome: Series[float] = pa.Field(description="Simulated outcome")
    response: Series[float] = pa.Field(
        alias=r"^response_\w+$",
        regex=True,
        description="Per-channel saturated carryover response",
    )
    control: Series[float] = pa.Field(description="Control (price) value")
    noise: Series[float] = pa.Field(description="Noise sample")

    class Config:
        """Pandera configuration."""

        name = "CleanDataset"
        strict = False
        coerce = True
        ordered = False


def validate_clean_dataset(df: "pd.DataFrame") -> "pd.DataFrame":
    """
    Validate a clean dataset against ``CleanDatasetFrame``.

    Raises
    ------
    pandera.errors.SchemaError
        If validation fails.
    """
    return CleanDatasetFrame.validate(df)


def response_columns(df: "pd.DataFrame") -> list[str]:
    """Return the per-channel response columns in file order."""
    return [c for c in df.columns if c.startswith("response_")]
