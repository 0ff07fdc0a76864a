"""
Bayesian carryover + shape model over raw lag windows.

The model sees only what the payload carries: raw exposure windows, the
outcome and the controls. Carryover weights are computed inside the model
from ``lag_indices`` so that rate (and theta) are inferred jointly with the
shape parameters K, S and B:

    x_scaled[i, c, l]  = min-max scaled raw_tensor[i, c, l]
    w[c, l]            = rate[c] ** ((l - theta[c]) ** 2)      (delayed)
                       = rate[c] ** l                          (geometric)
    carried[i, c]      = sum_l w[c, l] * x_scaled[i, c, l] / sum_l w[c, l]
    response[i, c]     = B[c] * carried**S / (carried**S + K**S)
    outcome[i]         ~ Normal(tau + sum_c response[i, c] + X_ctrl[i] @ gamma, sigma)

S and K trade off against each other on short series; ``fix_slope=True``
holds S at 1 for every channel.
"""

import logging
from typing import Literal

import arviz as az
import numpy as np
import pymc as pm
import pytensor.tensor as pt
from pymc.exceptions import SamplingError

from mixsim.data.design import ModelPayload
from mixsim.exceptions import InferenceUnavailable
from mixsim.models.engine import (
    ChannelPosterior,
    Estimate,
    InferenceEngine,
    InferenceResult,
    scale_raw_tensor,
)

logger = logging.getLogger(__name__)

# keeps carried**S differentiable in S where carried == 0
_CARRIED_FLOOR = 1e-12


def build_carryover_shape_model(
    payload: ModelPayload,
    carryover: Literal["geometric", "delayed"] = "delayed",
    fix_slope: bool = False,
) -> pm.Model:
    """
    Build the PyMC model for one payload.

    Parameters
    ----------
    payload : ModelPayload
        Raw lag windows, outcome and controls.
    carryover : {"geometric", "delayed"}
        Carryover family. "delayed" adds a per-channel peak lag ``theta``
        with a Uniform(0, ceil(L / 2)) prior.
    fix_slope : bool
        Hold S at 1 instead of estimating it.

    Returns
    -------
    pm.Model
        PyMC model ready for sampling. ``fitted`` is a deterministic aligned
        with ``payload.outcome``.

    Examples
    --------
    >>> model = build_carryover_shape_model(payload, carryover="geometric")
    >>> with model:
    ...     trace = pm.sample(1000, chains=4)
    """
    if payload.n == 0:
        raise ValueError("payload has no complete rows to fit")
    if carryover not in ("geometric", "delayed"):
        raise ValueError(f"carryover must be 'geometric' or 'delayed', got {carryover}")

    X_scaled = scale_raw_tensor(payload.raw_tensor)
    y = np.asarray(payload.outcome, dtype=np.float64)
    y_mean = float(y.mean())
    y_scale = float(y.std()) or 1.0

    coords = {
        "obs_id": np.arange(payload.n),
        "channel": list(payload.channel_names),
        "lag": payload.lag_indices,
        "control": list(payload.control_names),
    }

    with pm.Model(coords=coords) as model:
        X_media = pm.Data("X_media", X_scaled, dims=("obs_id", "channel", "lag"))
        X_ctrl = pm.Data("X_ctrl", payload.control_matrix, dims=("obs_id", "control"))
        lag_vec = pm.Data(
            "lag_vec", payload.lag_indices.astype(np.float64), dims="lag"
        )

        rate = pm.Beta("rate", alpha=3, beta=3, dims="channel")

        if carryover == "delayed":
            theta = pm.Uniform(
                "theta",
                lower=0,
                upper=max(1.0, float(np.ceil(payload.max_lag / 2))),
                dims="channel",
            )
            exponent = (lag_vec[None, :] - theta[:, None]) ** 2
        else:
            exponent = pt.ones((len(payload.channel_names), 1)) * lag_vec[None, :]

        weights = rate[:, None] ** exponent
        carried = (X_media * weights[None, :, :]).sum(axis=-1) / weights.sum(axis=-1)[
            None, :
        ]

        K = pm.Beta("K", alpha=2, beta=2, dims="channel")
        if fix_slope:
            S = pm.Deterministic(
                "S", pt.ones((len(payload.channel_names),)), dims="channel"
            )
        else:
            S = pm.Gamma("S", alpha=3, beta=1.5, dims="channel")
        B = pm.HalfNormal("B", sigma=2 * y_scale, dims="channel")

        carried_S = pt.maximum(carried, _CARRIED_FLOOR) ** S[None, :]
        K_S = K[None, :] ** S[None, :]
        response = B[None, :] * carried_S / (carried_S + K_S)

        intercept = pm.Normal("intercept", mu=y_mean, sigma=2 * y_scale)
        gamma = pm.Normal("gamma", mu=0, sigma=1, dims="control")
        sigma = pm.HalfNormal("sigma", sigma=y_scale)

        mu = pm.Deterministic(
            "fitted",
            intercept + response.sum(axis=1) + pm.math.dot(X_ctrl, gamma),
            dims="obs_id",
        )

        pm.Normal("outcome_obs", mu=mu, sigma=sigma, observed=y, dims="obs_id")

    return model


def _channel_estimates(
    trace: az.InferenceData, var: str, hdi_prob: float
) -> dict[str, Estimate]:
    param = trace.posterior[var]
    mean = param.mean(dim=["chain", "draw"])
    std = param.std(dim=["chain", "draw"])
    hdi = az.hdi(param, hdi_prob=hdi_prob)[var]

    return {
        str(ch): Estimate(
            mean=float(mean.sel(channel=ch)),
            sd=float(std.sel(channel=ch)),
            hdi_low=float(hdi.sel(channel=ch, hdi="lower")),
            hdi_high=float(hdi.sel(channel=ch, hdi="higher")),
        )
        for ch in param.coords["channel"].values
    }


def summarize_trace(
    trace: az.InferenceData,
    payload: ModelPayload,
    hdi_prob: float = 0.94,
) -> InferenceResult:
    """Collapse a posterior trace into an ``InferenceResult``."""
    posterior = trace.posterior
    names = ["rate", "K", "S", "B"] + (["theta"] if "theta" in posterior else [])
    per_var = {var: _channel_estimates(trace, var, hdi_prob) for var in names}

    channels = {
        ch: ChannelPosterior(
            rate=per_var["rate"][ch],
            K=per_var["K"][ch],
            S=per_var["S"][ch],
            B=per_var["B"][ch],
            theta=per_var["theta"][ch] if "theta" in per_var else None,
        )
        for ch in payload.channel_names
    }

    intercept = posterior["intercept"]
    gamma = posterior["gamma"]
    fitted = posterior["fitted"].mean(dim=["chain", "draw"]).values

    return InferenceResult(
        channels=channels,
        fitted=np.asarray(fitted, dtype=np.float64),
        intercept=Estimate(
            mean=float(intercept.mean()), sd=float(intercept.std())
        ),
        control_coefs={
            str(name): Estimate(
                mean=float(gamma.sel(control=name).mean()),
                sd=float(gamma.sel(control=name).std()),
            )
            for name in gamma.coords["control"].values
        },
    )


class CarryoverShapeEngine(InferenceEngine):
    """
    PyMC implementation of the inference engine.

    Holds sampler settings only; every ``fit`` builds a fresh model, so the
    engine keeps no state between payloads.
    """

    def __init__(
        self,
        carryover: Literal["geometric", "delayed"] = "delayed",
        fix_slope: bool = False,
        draws: int = 1000,
        tune: int = 1000,
        chains: int = 4,
        target_accept: float = 0.9,
        random_seed: int = 42,
        progressbar: bool = False,
        hdi_prob: float = 0.94,
    ):
        self.carryover = carryover
        self.fix_slope = fix_slope
        self.draws = draws
        self.tune = tune
        self.chains = chains
        self.target_accept = target_accept
        self.random_seed = random_seed
        self.progressbar = progressbar
        self.hdi_prob = hdi_prob

    def sample(self, payload: ModelPayload) -> az.InferenceData:
        model = build_carryover_shape_model(
            payload, carryover=self.carryover, fix_slope=self.fix_slope
        )
        logger.info(
            "Sampling %d draws x %d chains (%d tune) for %d rows",
            self.draws,
            self.chains,
            self.tune,
            payload.n,
        )
        with model:
            trace = pm.sample(
                draws=self.draws,
                tune=self.tune,
                chains=self.chains,
                target_accept=self.target_accept,
                random_seed=self.random_seed,
                return_inferencedata=True,
                progressbar=self.progressbar,
            )
        return trace

    def fit(self, payload: ModelPayload) -> InferenceResult:
        try:
            trace = self.sample(payload)
        except (SamplingError, FloatingPointError) as e:
            raise InferenceUnavailable(f"sampling failed: {e}") from e
        return summarize_trace(trace, payload, hdi_prob=self.hdi_prob)
