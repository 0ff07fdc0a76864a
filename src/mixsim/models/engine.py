"""
Inference engine contract.

The engine is an opaque, possibly slow, possibly stochastic service. The
core only relies on its input (a ``ModelPayload``) and output shapes:
per-channel posterior estimates plus a fitted outcome aligned index for
index with ``payload.outcome``.
"""

import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

import numpy as np
from numpy.typing import NDArray

from mixsim.config import CarryoverParams, ShapeParams
from mixsim.data.design import ModelPayload
from mixsim.exceptions import InferenceUnavailable
from mixsim.transforms.adstock import apply_lagged_carryover, carryover_weights
from mixsim.transforms.saturation import apply_shape
from mixsim.transforms.scaling import min_max_scale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Estimate:
    """Posterior mean, standard deviation and (optionally) HDI of one parameter."""

    mean: float
    sd: float = 0.0
    hdi_low: Optional[float] = None
    hdi_high: Optional[float] = None

    def covers(self, value: float) -> Optional[bool]:
        if self.hdi_low is None or self.hdi_high is None:
            return None
        return self.hdi_low <= value <= self.hdi_high


@dataclass(frozen=True)
class ChannelPosterior:
    """Posterior estimates of one channel's carryover and shape parameters."""

    rate: Estimate
    K: Estimate
    S: Estimate
    B: Estimate
    theta: Optional[Estimate] = None


@dataclass(frozen=True)
class InferenceResult:
    """
    What an engine returns.

    Attributes
    ----------
    channels : dict[str, ChannelPosterior]
        Posterior estimates keyed by channel name.
    fitted : NDArray
        Fitted outcome, ``fitted[i]`` aligned with ``payload.outcome[i]``.
    intercept, control_coefs : optional
        Estimates of the non-media terms when the engine provides them.
    """

    channels: dict[str, ChannelPosterior]
    fitted: NDArray[np.floating]
    intercept: Optional[Estimate] = None
    control_coefs: dict[str, Estimate] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "channels": {name: asdict(post) for name, post in self.channels.items()},
            "fitted": np.asarray(self.fitted, dtype=float).tolist(),
            "intercept": asdict(self.intercept) if self.intercept is not None else None,
            "control_coefs": {k: asdict(v) for k, v in self.control_coefs.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "InferenceResult":
        def est(d: Optional[Mapping]) -> Optional[Estimate]:
            return Estimate(**d) if d is not None else None

        channels = {
            name: ChannelPosterior(
                rate=est(post["rate"]),
                K=est(post["K"]),
                S=est(post["S"]),
                B=est(post["B"]),
                theta=est(post.get("theta")),
            )
            for name, post in data["channels"].items()
        }
        return cls(
            channels=channels,
            fitted=np.asarray(data["fitted"], dtype=np.float64),
            intercept=est(data.get("intercept")),
            control_coefs={k: Estimate(**v) for k, v in data.get("control_coefs", {}).items()},
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(exist_ok=True, parents=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "InferenceResult":
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


class InferenceEngine(ABC):
    """Consumes a ``ModelPayload`` and returns an ``InferenceResult``."""

    @abstractmethod
    def fit(self, payload: ModelPayload) -> InferenceResult:
        """Infer carryover and shape parameters from raw lag windows."""


def check_result_alignment(payload: ModelPayload, result: InferenceResult) -> None:
    """
    Raise ``InferenceUnavailable`` if ``result`` does not match ``payload``.

    The fitted vector must have one value per payload row and every payload
    channel must have a posterior.
    """
    fitted = np.asarray(result.fitted)
    if fitted.shape != (payload.n,):
        raise InferenceUnavailable(
            f"engine returned fitted values of shape {fitted.shape}, "
            f"expected ({payload.n},)"
        )
    missing = [c for c in payload.channel_names if c not in result.channels]
    if missing:
        raise InferenceUnavailable(f"engine returned no posterior for channels {missing}")


def run_inference(
    engine: InferenceEngine,
    payload: ModelPayload,
    timeout: Optional[float] = None,
) -> InferenceResult:
    """
    Call ``engine.fit`` at a cancellable, timeout-able boundary.

    The call runs in a worker thread. On timeout the future is cancelled and
    the caller gets ``InferenceUnavailable``; the payload is immutable, so
    retrying with the same object is safe.

    Raises
    ------
    InferenceUnavailable
        If the engine raises, exceeds ``timeout`` seconds, or returns a
        result that is not aligned with the payload.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mixsim-inference")
    future = pool.submit(engine.fit, payload)
    try:
        result = future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        logger.warning("Inference timed out after %s s", timeout)
        raise InferenceUnavailable(f"inference timed out after {timeout} s") from e
    except InferenceUnavailable:
        raise
    except Exception as e:
        logger.warning("Inference failed: %s", e)
        raise InferenceUnavailable(f"inference engine failed: {e}") from e
    finally:
        # a running fit cannot be interrupted; don't block the caller on it
        pool.shutdown(wait=False)

    check_result_alignment(payload, result)
    return result


def scale_raw_tensor(raw_tensor: NDArray[np.floating]) -> NDArray[np.floating]:
    """
    Min-max scale each channel of a raw ``[N, channels, L]`` tensor.

    The windows of a complete payload cover every generated period, so the
    per-channel min and max equal those of the full raw series.
    """
    scaled = np.empty_like(raw_tensor, dtype=np.float64)
    for c in range(raw_tensor.shape[1]):
        scaled[:, c, :] = min_max_scale(raw_tensor[:, c, :])
    return scaled


class FixedParameterEngine(InferenceEngine):
    """
    Deterministic stand-in that evaluates the forward model with known parameters.

    Useful for testing the payload contract without sampling: given the true
    parameters of a noise-free scenario, ``fitted`` reproduces the outcome.
    """

    def __init__(
        self,
        channels: Mapping[str, tuple[CarryoverParams, ShapeParams]],
        intercept: float = 0.0,
        control_coefs: Optional[Mapping[str, float]] = None,
    ):
        self.channels = dict(channels)
        self.intercept = intercept
        self.control_coefs = dict(control_coefs or {})

    def fit(self, payload: ModelPayload) -> InferenceResult:
        fitted = np.full(payload.n, self.intercept, dtype=np.float64)
        posteriors: dict[str, ChannelPosterior] = {}

        if payload.n > 0:
            scaled = scale_raw_tensor(payload.raw_tensor)
        for c, name in enumerate(payload.channel_names):
            carryover, shape = self.channels[name]
            if payload.n > 0:
                carried = apply_lagged_carryover(scaled[:, c, :], carryover_weights(carryover))
                fitted = fitted + apply_shape(carried, shape)

            posteriors[name] = ChannelPosterior(
                rate=Estimate(carryover.rate),
                theta=Estimate(carryover.theta) if carryover.algorithm == "delayed" else None,
                K=Estimate(shape.K),
                S=Estimate(shape.S),
                B=Estimate(shape.B),
            )

        coefs = np.array(
            [self.control_coefs.get(name, 0.0) for name in payload.control_names]
        )
        if payload.num_controls > 0:
            fitted = fitted + payload.control_matrix @ coefs

        return InferenceResult(
            channels=posteriors,
            fitted=fitted,
            intercept=Estimate(self.intercept),
            control_coefs={
                name: Estimate(float(v)) for name, v in zip(payload.control_names, coefs)
            },
        )
