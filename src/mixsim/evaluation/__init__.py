"""
Evaluation utilities for parameter recovery.

Compares an engine's posterior estimates with the scenario that generated
the data, and scores the fitted outcome.
"""

from mixsim.evaluation.recovery import (
    compare_to_ground_truth,
    fit_quality,
    format_recovery_report,
)

__all__ = [
    "compare_to_ground_truth",
    "fit_quality",
    "format_recovery_report",
]
