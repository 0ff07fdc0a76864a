"""
Tests for the inference engine boundary.

Tests cover:
- Timeout, failure and misaligned results -> InferenceUnavailable
- Retrying with the same payload
- Result persistence
- PyMC engine smoke tests (slow; skipped without PyMC)
"""

import threading

import numpy as np
import pytest

from mixsim.data.design import simulate_scenario
from mixsim.exceptions import InferenceUnavailable
from mixsim.models.engine import (
    ChannelPosterior,
    Estimate,
    FixedParameterEngine,
    InferenceEngine,
    InferenceResult,
    check_result_alignment,
    run_inference,
    scale_raw_tensor,
)


def _posterior(value: float = 0.5) -> ChannelPosterior:
    return ChannelPosterior(
        rate=Estimate(value, 0.1, value - 0.2, value + 0.2),
        K=Estimate(value),
        S=Estimate(1.0),
        B=Estimate(1.0),
    )


class _BlockingEngine(InferenceEngine):
    """Never finishes until released."""

    def __init__(self):
        self.release = threading.Event()

    def fit(self, payload):
        self.release.wait(timeout=5)
        raise RuntimeError("released")


class _FailingEngine(InferenceEngine):
    def fit(self, payload):
        raise FloatingPointError("bad initial energy")


class _FlakyEngine(InferenceEngine):
    """Fails on the first call, succeeds on the next."""

    def __init__(self, inner: InferenceEngine):
        self.inner = inner
        self.calls = 0

    def fit(self, payload):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("transient")
        return self.inner.fit(payload)


class _ShortEngine(InferenceEngine):
    def fit(self, payload):
        return InferenceResult(
            channels={name: _posterior() for name in payload.channel_names},
            fitted=np.zeros(payload.n - 1),
        )


@pytest.fixture
def true_engine(small_scenario):
    return FixedParameterEngine(
        channels={c.name: (c.carryover, c.shape) for c in small_scenario.channels},
        intercept=small_scenario.intercept,
        control_coefs={"price": small_scenario.control_coef},
    )


class TestRunInference:
    """The engine call boundary."""

    def test_success(self, small_simulation, true_engine):
        result = run_inference(true_engine, small_simulation.payload)
        assert result.fitted.shape == (small_simulation.payload.n,)

    def test_timeout(self, small_simulation):
        engine = _BlockingEngine()
        try:
            with pytest.raises(InferenceUnavailable, match="timed out"):
                run_inference(engine, small_simulation.payload, timeout=0.05)
        finally:
            engine.release.set()

    def test_engine_exception_wrapped(self, small_simulation):
        with pytest.raises(InferenceUnavailable, match="bad initial energy") as info:
            run_inference(_FailingEngine(), small_simulation.payload)
        assert isinstance(info.value.__cause__, FloatingPointError)

    def test_misaligned_fitted_rejected(self, small_simulation):
        with pytest.raises(InferenceUnavailable):
            run_inference(_ShortEngine(), small_simulation.payload)

    def test_retry_with_same_payload(self, small_simulation, true_engine):
        payload = small_simulation.payload
        before = payload.raw_tensor.copy()
        engine = _FlakyEngine(true_engine)

        with pytest.raises(InferenceUnavailable):
            run_inference(engine, payload)
        result = run_inference(engine, payload)

        np.testing.assert_array_equal(payload.raw_tensor, before)
        np.testing.assert_allclose(result.fitted, true_engine.fit(payload).fitted)

    def test_missing_channel_rejected(self, small_simulation):
        payload = small_simulation.payload
        result = InferenceResult(
            channels={payload.channel_names[0]: _posterior()},
            fitted=np.zeros(payload.n),
        )
        with pytest.raises(InferenceUnavailable, match="no posterior"):
            check_result_alignment(payload, result)


class TestInferenceResult:

    def test_save_load(self, tmp_path):
        result = InferenceResult(
            channels={
                "tv": ChannelPosterior(
                    rate=Estimate(0.6, 0.05, 0.5, 0.7),
                    K=Estimate(0.4, 0.1),
                    S=Estimate(1.5, 0.3),
                    B=Estimate(1.2, 0.2),
                    theta=Estimate(2.1, 0.4),
                )
            },
            fitted=np.array([1.0, 2.5, 3.25]),
            intercept=Estimate(2.0, 0.1),
            control_coefs={"price": Estimate(-0.3, 0.05)},
        )
        loaded = InferenceResult.load(result.save(tmp_path / "out" / "result.json"))

        assert loaded.channels == result.channels
        np.testing.assert_array_equal(loaded.fitted, result.fitted)
        assert loaded.intercept == result.intercept
        assert loaded.control_coefs == result.control_coefs

    def test_estimate_coverage(self):
        est = Estimate(0.5, 0.1, 0.3, 0.7)
        assert est.covers(0.6)
        assert not est.covers(0.9)
        assert Estimate(0.5).covers(0.5) is None


class TestScaleRawTensor:

    def test_per_channel_unit_range(self, small_simulation):
        scaled = scale_raw_tensor(small_simulation.payload.raw_tensor)
        for c in range(scaled.shape[1]):
            assert scaled[:, c, :].min() == 0.0
            assert scaled[:, c, :].max() == 1.0


# =============================================================================
# PYMC ENGINE (slow)
# =============================================================================


class TestCarryoverShapePymc:
    """Smoke tests for the PyMC engine. Recovery quality is not asserted."""

    def test_pymc_model_builds(self, small_simulation):
        pytest.importorskip("pymc")
        from mixsim.models.carryover_shape import build_carryover_shape_model

        model = build_carryover_shape_model(small_simulation.payload, carryover="delayed")
        names = {rv.name for rv in model.free_RVs}
        assert {"rate", "theta", "K", "S", "B", "intercept", "gamma", "sigma"} <= names

    def test_pymc_fixed_slope_model(self, small_simulation):
        pytest.importorskip("pymc")
        from mixsim.models.carryover_shape import build_carryover_shape_model

        model = build_carryover_shape_model(
            small_simulation.payload, carryover="geometric", fix_slope=True
        )
        names = {rv.name for rv in model.free_RVs}
        assert "S" not in names
        assert "theta" not in names

    def test_pymc_result_aligned(self, fitted_carryover_shape_result):
        payload, result = fitted_carryover_shape_result
        check_result_alignment(payload, result)
        assert set(result.channels) == set(payload.channel_names)
        for posterior in result.channels.values():
            assert posterior.theta is None
            assert 0 < posterior.rate.mean < 1
            assert posterior.rate.hdi_low <= posterior.rate.hdi_high

    def test_pymc_empty_payload_rejected(self):
        pytest.importorskip("pymc")
        from mixsim.config import default_scenario_config
        from mixsim.models.carryover_shape import build_carryover_shape_model

        result = simulate_scenario(default_scenario_config(periods=5, window_length=8))
        with pytest.raises(ValueError):
            build_carryover_shape_model(result.payload)
