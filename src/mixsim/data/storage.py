"""Persistence for clean datasets, inference payloads and ground truth."""

import logging
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from mixsim.config import ScenarioConfig, load_scenario_config
from mixsim.data.design import ModelPayload, SimulationResult
from mixsim.data.schemas import validate_clean_dataset

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

CLEAN_DATASET_FILENAME = "clean_dataset.csv"
PAYLOAD_FILENAME = "payload.npz"
GROUND_TRUTH_FILENAME = "ground_truth.json"

# full timestamp so sub-daily frequencies survive the round trip
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def save_clean_dataset(df: pd.DataFrame, path: PathLike) -> Path:
    """
    Write the clean dataset as CSV, one row per retained period.

    Floats are written with round-trip precision and dates as full ISO
    timestamps, so that
    ``load_clean_dataset`` reproduces every value.
    """
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)

    out = df.copy()
    out["date"] = pd.to_datetime(out["date"])
    out.to_csv(path, index=False, float_format="%.17g", date_format=ISO_DATE_FORMAT)
    logger.info("Saved clean dataset (%d rows) to %s", len(out), path)
    return path


def load_clean_dataset(path: PathLike) -> pd.DataFrame:
    """Read a clean dataset written by ``save_clean_dataset`` and validate it."""
    df = pd.read_csv(path, parse_dates=["date"], float_precision="round_trip")
    return validate_clean_dataset(df)


def save_payload(payload: ModelPayload, path: PathLike) -> Path:
    """Write the payload to ``.npz`` under its contract field names."""
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)

    np.savez(
        path,
        **payload.to_dict(),
        channelNames=np.array(payload.channel_names, dtype=str),
        controlNames=np.array(payload.control_names, dtype=str),
    )
    logger.info(
        "Saved payload (N=%d, channels=%d, L=%d) to %s",
        payload.n,
        payload.num_channels,
        payload.max_lag,
        path,
    )
    return path


def load_payload(path: PathLike) -> ModelPayload:
    with np.load(path, allow_pickle=False) as data:
        return ModelPayload.from_dict(
            data,
            channel_names=[str(c) for c in data["channelNames"]],
            control_names=[str(c) for c in data["controlNames"]],
        )


def save_ground_truth(config: ScenarioConfig, path: PathLike) -> Path:
    """The scenario configuration is the ground truth: every true parameter lives in it."""
    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)
    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Saved ground truth to %s", path)
    return path


def load_ground_truth(path: PathLike) -> ScenarioConfig:
    return load_scenario_config(path)


def save_simulation(
    result: SimulationResult,
    output_dir: PathLike = "data/",
) -> dict[str, Path]:
    """
    Save the clean dataset, the payload and (when known) the ground truth.

    Returns
    -------
    dict[str, Path]
        Written file paths keyed by ``"dataset"``, ``"payload"`` and
        ``"ground_truth"``.
    """
    output_path = Path(output_dir)
    output_path.mkdir(exist_ok=True, parents=True)

    paths = {
        "dataset": save_clean_dataset(result.dataset, output_path / CLEAN_DATASET_FILENAME),
        "payload": save_payload(result.payload, output_path / PAYLOAD_FILENAME),
    }
    if result.config is not None:
        paths["ground_truth"] = save_ground_truth(
            result.config, output_path / GROUND_TRUTH_FILENAME
        )
    return paths
