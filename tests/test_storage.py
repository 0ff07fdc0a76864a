"""
Tests for dataset, payload and ground-truth persistence.
"""

import numpy as np
import pandera as pa
import pytest

from mixsim.config import default_scenario_config
from mixsim.data.design import simulate_scenario
from mixsim.data.schemas import response_columns, validate_clean_dataset
from mixsim.data.storage import (
    CLEAN_DATASET_FILENAME,
    GROUND_TRUTH_FILENAME,
    PAYLOAD_FILENAME,
    load_clean_dataset,
    load_ground_truth,
    load_payload,
    save_clean_dataset,
    save_payload,
    save_simulation,
)


@pytest.fixture
def ten_period_run():
    """10 generated periods, L=3: eight retained rows."""
    return simulate_scenario(default_scenario_config(periods=10, seed=5, window_length=3))


class TestCleanDatasetRoundTrip:
    """Write then read the clean dataset."""

    def test_every_column_within_tolerance(self, ten_period_run, tmp_path):
        original = ten_period_run.dataset
        path = save_clean_dataset(original, tmp_path / "clean.csv")
        loaded = load_clean_dataset(path)

        assert list(loaded.columns) == list(original.columns)
        assert len(loaded) == len(original) == 8
        for column in original.columns:
            if column == "date":
                assert (loaded["date"].values == original["date"].values).all()
            else:
                np.testing.assert_allclose(
                    loaded[column].to_numpy(), original[column].to_numpy(), rtol=0, atol=1e-9
                )

    def test_response_columns(self, ten_period_run, tmp_path):
        path = save_clean_dataset(ten_period_run.dataset, tmp_path / "clean.csv")
        loaded = load_clean_dataset(path)
        assert response_columns(loaded) == ["response_tv", "response_radio", "response_online"]

    def test_hourly_timestamps_survive(self, tmp_path):
        config = default_scenario_config(periods=10, seed=5, window_length=3).model_copy(
            update={"freq": "h"}
        )
        original = simulate_scenario(config).dataset
        loaded = load_clean_dataset(save_clean_dataset(original, tmp_path / "clean.csv"))

        assert loaded["date"].dt.hour.nunique() > 1
        assert (loaded["date"].values == original["date"].values).all()

    def test_creates_parent_directories(self, ten_period_run, tmp_path):
        path = save_clean_dataset(ten_period_run.dataset, tmp_path / "a" / "b" / "clean.csv")
        assert path.exists()


class TestSchema:
    """Pandera validation of the clean dataset."""

    def test_valid_dataset_passes(self, ten_period_run):
        validate_clean_dataset(ten_period_run.dataset)

    def test_missing_outcome_fails(self, ten_period_run):
        with pytest.raises(pa.errors.SchemaError):
            validate_clean_dataset(ten_period_run.dataset.drop(columns=["outcome"]))

    def test_non_numeric_response_fails(self, ten_period_run):
        df = ten_period_run.dataset.copy()
        df["response_tv"] = "not a number"
        with pytest.raises((pa.errors.SchemaError, pa.errors.SchemaErrors)):
            validate_clean_dataset(df)


class TestPayloadRoundTrip:

    def test_contract_fields_preserved(self, ten_period_run, tmp_path):
        original = ten_period_run.payload
        loaded = load_payload(save_payload(original, tmp_path / "payload.npz"))

        assert loaded.n == original.n
        assert loaded.max_lag == original.max_lag
        assert loaded.num_channels == original.num_channels
        assert loaded.num_controls == original.num_controls
        np.testing.assert_array_equal(loaded.outcome, original.outcome)
        np.testing.assert_array_equal(loaded.lag_indices, original.lag_indices)
        np.testing.assert_array_equal(loaded.raw_tensor, original.raw_tensor)
        np.testing.assert_array_equal(loaded.control_matrix, original.control_matrix)
        assert loaded.channel_names == original.channel_names
        assert loaded.control_names == ("price",)

    def test_npz_uses_contract_names(self, ten_period_run, tmp_path):
        path = save_payload(ten_period_run.payload, tmp_path / "payload.npz")
        with np.load(path) as data:
            assert {"N", "outcome", "maxLag", "numChannels", "lagIndices",
                    "rawTensor", "numControls", "controlMatrix"} <= set(data.files)


class TestSaveSimulation:

    def test_writes_all_products(self, ten_period_run, tmp_path):
        paths = save_simulation(ten_period_run, tmp_path)

        assert paths["dataset"] == tmp_path / CLEAN_DATASET_FILENAME
        assert paths["payload"] == tmp_path / PAYLOAD_FILENAME
        assert paths["ground_truth"] == tmp_path / GROUND_TRUTH_FILENAME
        for path in paths.values():
            assert path.exists()

    def test_ground_truth_round_trip(self, ten_period_run, tmp_path):
        paths = save_simulation(ten_period_run, tmp_path)
        assert load_ground_truth(paths["ground_truth"]) == ten_period_run.config
