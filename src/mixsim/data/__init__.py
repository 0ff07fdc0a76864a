"""Synthetic series generation, design assembly and dataset persistence."""

from mixsim.data.schemas import CleanDatasetFrame, validate_clean_dataset
from mixsim.data.synthetic import (
    ScenarioSeries,
    generate_channel_series,
    generate_price_series,
    generate_scenario_series,
    spawn_generators,
)
from mixsim.data.design import (
    DesignRow,
    ModelPayload,
    SimulationResult,
    assemble_design,
    build_payload,
    simulate_scenario,
    run_scenarios,
)
from mixsim.data.storage import (
    save_clean_dataset,
    load_clean_dataset,
    save_payload,
    load_payload,
    save_ground_truth,
    load_ground_truth,
    save_simulation,
)

__all__ = [
    "CleanDatasetFrame",
    "validate_clean_dataset",
    "ScenarioSeries",
    "generate_channel_series",
    "generate_price_series",
    "generate_scenario_series",
    "spawn_generators",
    "DesignRow",
    "ModelPayload",
    "SimulationResult",
    "assemble_design",
    "build_payload",
    "simulate_scenario",
    "run_scenarios",
    "save_clean_dataset",
    "load_clean_dataset",
    "save_payload",
    "load_payload",
    "save_ground_truth",
    "load_ground_truth",
    "save_simulation",
]
