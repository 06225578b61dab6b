"""Parameter sampler: one joint vital-rate draw per replicate.

Survivals:  Normal(estimate, se) on the logit scale → inverse-logit.
Fecundity:  Normal(estimate, se) on the natural scale, floored at eps.
Indirect:   Normal(estimate, se) on the natural scale, unbounded.

Every draw is estimate + se × z with z ~ N(0, 1), so a zero SE reproduces
the point estimate exactly and every scenario consumes the same number of
variates in the same order (survival1..4, fecundity, indirect).
"""

from __future__ import annotations

import numpy as np
from scipy.special import expit

from herbicide_pva.types import (
    FECUNDITY_FLOOR,
    SURVIVAL_MAX,
    SURVIVAL_MIN,
    SURVIVAL_STAGES,
    ParameterDraw,
    ScenarioInputs,
    VitalRateEstimate,
    check_count,
)


def draw_normal(
    rng: np.random.Generator,
    estimate: VitalRateEstimate,
    replicates: int,
) -> np.ndarray:
    """Draw `replicates` values from Normal(estimate, se)."""
    z = rng.standard_normal(replicates)
    return estimate.estimate + estimate.se * z


def inverse_logit(x: np.ndarray) -> np.ndarray:
    """Logistic transform, clipped so every value lies strictly in (0, 1)."""
    return np.clip(expit(x), SURVIVAL_MIN, SURVIVAL_MAX)


def sample_parameters(
    rng: np.random.Generator,
    inputs: ScenarioInputs,
    replicates: int,
) -> ParameterDraw:
    """Sample `replicates` independent joint draws of all six vital rates.

    Args:
        rng: Generator owned by the scenario.
        inputs: Validated scenario inputs.
        replicates: Number of parameter draws.

    Returns:
        ParameterDraw with survivals on the probability scale.
    """
    replicates = check_count(replicates, 'replicates')

    survivals = {
        name: inverse_logit(draw_normal(rng, getattr(inputs, name), replicates))
        for name in SURVIVAL_STAGES
    }
    fecundity = np.maximum(
        draw_normal(rng, inputs.fecundity, replicates), FECUNDITY_FLOOR
    )
    indirect = draw_normal(rng, inputs.indirect, replicates)

    return ParameterDraw(fecundity=fecundity, indirect=indirect, **survivals)
