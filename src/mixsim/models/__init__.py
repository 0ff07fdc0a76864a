"""
Inference engines for carryover/shape parameter recovery.

The engine boundary is an abstract contract (``InferenceEngine``): a
``ModelPayload`` goes in, per-channel posteriors and a fitted outcome come
out. Two implementations:

1. **FixedParameterEngine**: deterministic stand-in that evaluates the
   forward model with given parameters. No sampling; used in tests.

2. **CarryoverShapeEngine**: PyMC model that infers rate, theta, K, S and
   B from raw lag windows. Slow and stochastic; always call it through
   ``run_inference`` to get a timeout and ``InferenceUnavailable`` on failure.

The PyMC engine is imported lazily so the rest of the package works without
a compiled PyMC stack.
"""

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

__all__ = [
    "ChannelPosterior",
    "Estimate",
    "FixedParameterEngine",
    "InferenceEngine",
    "InferenceResult",
    "check_result_alignment",
    "run_inference",
    "scale_raw_tensor",
]
