"""
Signal transforms for media-mix simulation.

Exposure does not translate directly into outcome. Two effects are modeled:

1. **Carryover (adstock)**: exposure today keeps acting for a few periods.
   Evaluated over a right-aligned trailing window of width L, either with
   geometric weights ``rate**l`` or delayed weights ``rate**((l - theta)**2)``
   that peak ``theta`` periods after exposure.

2. **Shape (saturation)**: each extra unit of exposure buys less response.
   Modeled with the Hill-type ``beta_hill`` curve on [0, 1] inputs.

The ground-truth pipeline is:

    raw exposure -> normalize -> carryover -> shape -> response

All functions are pure and operate on NumPy arrays.
"""

from mixsim.transforms.adstock import (
    geometric_weights,
    delayed_weights,
    carryover_weights,
    geometric_decay,
    delayed_decay,
    trailing_window,
    lag_windows,
    carryover_at,
    apply_carryover,
    apply_lagged_carryover,
    rate_to_half_life,
    get_effective_window,
    plot_carryover_weights,
)
from mixsim.transforms.saturation import (
    beta_hill,
    apply_shape,
    shape_ceiling,
    compute_marginal_response,
    find_saturation_threshold,
    plot_shape_curves,
)
from mixsim.transforms.scaling import min_max_scale, normalize

__all__ = [
    # Carryover
    "geometric_weights",
    "delayed_weights",
    "carryover_weights",
    "geometric_decay",
    "delayed_decay",
    "trailing_window",
    "lag_windows",
    "carryover_at",
    "apply_carryover",
    "apply_lagged_carryover",
    "rate_to_half_life",
    "get_effective_window",
    "plot_carryover_weights",
    # Shape
    "beta_hill",
    "apply_shape",
    "shape_ceiling",
    "compute_marginal_response",
    "find_saturation_threshold",
    "plot_shape_curves",
    # Scaling
    "min_max_scale",
    "normalize",
]
