"""
Pytest configuration and shared fixtures for mixsim tests.

Provides reusable fixtures for:
- Random number generators
- Sample exposure series and windows
- Channel and scenario configurations
- Assembled simulation results
- A tiny fitted PyMC result (session-scoped for speed)
"""

import numpy as np
import pytest

from mixsim.config import (
    CarryoverParams,
    ChannelConfig,
    ScenarioConfig,
    ShapeParams,
    default_scenario_config,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================


@pytest.fixture
def random_seed() -> int:
    """Consistent random seed for reproducible tests."""
    return 42


@pytest.fixture
def rng(random_seed: int) -> np.random.Generator:
    """NumPy random generator."""
    return np.random.default_rng(random_seed)


# =============================================================================
# SERIES FIXTURES
# =============================================================================


@pytest.fixture
def sample_window() -> np.ndarray:
    """Chronological trailing window, oldest first."""
    return np.array([0.2, 0.9, 0.4, 0.0, 0.7])


@pytest.fixture
def sample_exposure(rng: np.random.Generator) -> np.ndarray:
    """52 periods of noisy periodic exposure."""
    t = np.arange(52)
    return np.sin(0.4 * t) + 0.3 * rng.standard_normal(52)


@pytest.fixture
def normalized_exposure(sample_exposure: np.ndarray) -> np.ndarray:
    """Exposure min-max scaled to [0, 1]."""
    lo, hi = sample_exposure.min(), sample_exposure.max()
    return (sample_exposure - lo) / (hi - lo)


# =============================================================================
# CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def geometric_params() -> CarryoverParams:
    return CarryoverParams(algorithm="geometric", rate=0.6, window_length=8)


@pytest.fixture
def delayed_params() -> CarryoverParams:
    return CarryoverParams(algorithm="delayed", rate=0.7, theta=2.0, window_length=8)


@pytest.fixture
def shape_params() -> ShapeParams:
    return ShapeParams(K=0.5, S=2.0, B=1.0)


@pytest.fixture
def step_channel() -> ChannelConfig:
    """Single channel used by the step-exposure scenario."""
    return ChannelConfig(
        name="tv",
        carryover=CarryoverParams(algorithm="geometric", rate=0.8, window_length=5),
        shape=ShapeParams(K=0.5, S=1.0, B=1.0),
    )


@pytest.fixture
def small_scenario() -> ScenarioConfig:
    """Three-channel scenario with 30 periods and L=4."""
    return default_scenario_config(periods=30, seed=7, window_length=4)


@pytest.fixture
def noiseless_scenario() -> ScenarioConfig:
    """Scenario without outcome noise (outcome is fully determined by parameters)."""
    config = default_scenario_config(periods=40, seed=11, window_length=6)
    return config.model_copy(update={"noise": config.noise.model_copy(update={"sd": 0.0})})


@pytest.fixture
def small_simulation(small_scenario: ScenarioConfig):
    from mixsim.data.design import simulate_scenario

    return simulate_scenario(small_scenario)


# =============================================================================
# MODEL FIXTURES (Session-scoped for speed)
# =============================================================================


@pytest.fixture(scope="session")
def fitted_carryover_shape_result():
    """
    Inference result from a minimal PyMC run.

    Session-scoped to avoid refitting for every test.
    Uses minimal sampling for speed.
    """
    pytest.importorskip("pymc")

    from mixsim.data.design import simulate_scenario
    from mixsim.models.carryover_shape import CarryoverShapeEngine

    config = default_scenario_config(
        periods=40, seed=3, window_length=4, channels=["radio", "online"]
    )
    result = simulate_scenario(config)

    engine = CarryoverShapeEngine(
        carryover="geometric",
        draws=50,
        tune=50,
        chains=1,
        random_seed=42,
    )
    return result.payload, engine.fit(result.payload)


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "pymc: marks tests requiring PyMC sampling")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their requirements."""
    for item in items:
        if "pymc" in item.nodeid.lower() or "sampling" in item.nodeid.lower():
            item.add_marker(pytest.mark.pymc)
            item.add_marker(pytest.mark.slow)


# =============================================================================
# HYPOTHESIS PROFILES
# =============================================================================

from hypothesis import settings, Verbosity

settings.register_profile("ci", max_examples=50, deadline=None)
settings.register_profile("dev", max_examples=10, deadline=None)
settings.register_profile(
    "debug", max_examples=5, verbosity=Verbosity.verbose, deadline=None
)
