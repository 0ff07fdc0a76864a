from typing import Optional

import numpy as np
import pandas as pd

from mixsim.config import ScenarioConfig
from mixsim.data.design import ModelPayload
from mixsim.models.engine import InferenceResult


def _true_values(config: ScenarioConfig) -> dict[str, dict[str, Optional[float]]]:
    truth: dict[str, dict[str, Optional[float]]] = {}
    for channel in config.channels:
        delayed = channel.carryover.algorithm == "delayed"
        truth[channel.name] = {
            "rate": channel.carryover.rate,
            "theta": channel.carryover.theta if delayed else None,
            "K": channel.shape.K,
            "S": channel.shape.S,
            "B": channel.shape.B,
        }
    return truth


def compare_to_ground_truth(
    result: InferenceResult,
    config: ScenarioConfig,
) -> pd.DataFrame:
    """
    Line up recovered parameters against the scenario's true values.

    Returns one row per (channel, parameter) with the true value, posterior
    mean and sd, HDI coverage (when the engine reports an HDI) and error.
    Parameters the engine did not estimate (e.g. theta for geometric
    carryover) are skipped.
    """
    records = []
    for channel, params in _true_values(config).items():
        posterior = result.channels.get(channel)
        if posterior is None:
            continue

        for param, true_value in params.items():
            estimate = getattr(posterior, param)
            if true_value is None or estimate is None:
                continue
            records.append(
                {
                    "channel": channel,
                    "parameter": param,
                    "true_value": true_value,
                    "recovered_mean": estimate.mean,
                    "recovered_std": estimate.sd,
                    "covered": estimate.covers(true_value),
                    "error": estimate.mean - true_value,
                    "abs_error": abs(estimate.mean - true_value),
                }
            )

    return pd.DataFrame(
        records,
        columns=[
            "channel",
            "parameter",
            "true_value",
            "recovered_mean",
            "recovered_std",
            "covered",
            "error",
            "abs_error",
        ],
    )


def fit_quality(payload: ModelPayload, result: InferenceResult) -> dict[str, float]:
    """RMSE and R^2 of the fitted outcome against the observed outcome."""
    y = np.asarray(payload.outcome, dtype=np.float64)
    fitted = np.asarray(result.fitted, dtype=np.float64)
    if y.size == 0:
        return {"rmse": float("nan"), "r2": float("nan")}

    resid = y - fitted
    ss_res = float(np.sum(resid**2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))

    return {
        "rmse": float(np.sqrt(ss_res / y.size)),
        "r2": 1.0 - ss_res / ss_tot if ss_tot > 0 else float("nan"),
    }


def format_recovery_report(
    comparison: pd.DataFrame,
    quality: Optional[dict[str, float]] = None,
    decimals: int = 3,
) -> str:
    lines = [
        "=" * 70,
        "PARAMETER RECOVERY REPORT",
        "=" * 70,
        "",
    ]

    if comparison.empty:
        lines.append("No overlapping parameters between result and ground truth.")
    else:
        table = comparison.set_index(["channel", "parameter"])[
            ["true_value", "recovered_mean", "recovered_std", "error"]
        ]
        lines.extend(
            [
                "TRUE vs RECOVERED",
                "-" * 50,
                table.round(decimals).to_string(),
                "",
                "MEAN ABSOLUTE ERROR BY PARAMETER",
                "-" * 50,
                comparison.groupby("parameter")["abs_error"]
                .mean()
                .round(decimals)
                .to_string(),
                "",
            ]
        )

        covered = comparison["covered"].dropna()
        if len(covered) > 0:
            lines.append(f"HDI coverage: {covered.astype(bool).mean():.1%}")
            lines.append("")

    if quality is not None:
        lines.extend(
            [
                "FIT QUALITY",
                "-" * 50,
                f"RMSE: {quality['rmse']:.{decimals}f}",
                f"R^2:  {quality['r2']:.{decimals}f}",
                "",
            ]
        )

    lines.append("=" * 70)
    return "\n".join(lines)
