"""Two-level Monte Carlo growth-rate simulation.

Per scenario:
  1. Parameter uncertainty: sample one joint vital-rate draw per replicate
  2. Compose the expected growth rate λ̂ per replicate
  3. Environmental stochasticity: bias-corrected log-normal noise per year

The result is a (replicates, years) GrowthRateMatrix, returned read-only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from herbicide_pva.environment import realize_growth_rates
from herbicide_pva.growth import expected_growth_rate
from herbicide_pva.rng import make_rng
from herbicide_pva.sampler import sample_parameters
from herbicide_pva.types import (
    EffectMode,
    EstimateLike,
    ParameterDraw,
    ScenarioInputs,
    SentinelLeakError,
    check_count,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# RESULT CONTAINER
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScenarioResult:
    """Output of one scenario simulation."""
    treatment: str
    effect_mode: EffectMode
    inputs: ScenarioInputs
    parameters: ParameterDraw
    expected: np.ndarray        # (replicates,) pre-noise λ̂
    growth_rates: np.ndarray    # (replicates, years) realized λ

    @property
    def replicate_means(self) -> np.ndarray:
        """Across-year mean growth rate per replicate, shape (replicates,)."""
        return self.growth_rates.mean(axis=1)


def _check_complete(matrix: np.ndarray, replicates: int, years: int) -> None:
    """Raise SentinelLeakError unless every cell was populated."""
    if matrix.shape != (replicates, years):
        raise SentinelLeakError(
            f"growth-rate matrix has shape {matrix.shape}, "
            f"expected ({replicates}, {years})"
        )
    if not np.all(np.isfinite(matrix)):
        n_bad = int(matrix.size - np.count_nonzero(np.isfinite(matrix)))
        raise SentinelLeakError(
            f"growth-rate matrix has {n_bad} unpopulated or non-finite cells"
        )


# ═══════════════════════════════════════════════════════════════════════
# SIMULATION
# ═══════════════════════════════════════════════════════════════════════

def _simulate(
    inputs: ScenarioInputs,
    replicates: int,
    years: int,
    rng: np.random.Generator,
):
    replicates = check_count(replicates, 'replicates')
    years = check_count(years, 'years')

    draw = sample_parameters(rng, inputs, replicates)
    expected = expected_growth_rate(draw)
    realized = realize_growth_rates(rng, expected, inputs.env_sd, years)
    _check_complete(realized, replicates, years)

    expected.flags.writeable = False
    realized.flags.writeable = False
    return draw, expected, realized


def simulate_scenario(
    inputs: ScenarioInputs,
    replicates: int,
    years: int,
    rng: np.random.Generator,
    treatment: str = '',
    effect_mode: EffectMode = EffectMode.DIRECT,
) -> ScenarioResult:
    """Run parameter sampling, composition, and noise for one scenario.

    Args:
        inputs: Validated scenario inputs.
        replicates: Number of parameter-uncertainty replicates.
        years: Number of environmental-noise years per replicate.
        rng: Generator owned by this scenario (see rng.create_rng_hierarchy).
        treatment: Treatment label carried into the result.
        effect_mode: Effect-mode label carried into the result.

    Returns:
        ScenarioResult holding draws, λ̂ and the read-only growth matrix.
    """
    draw, expected, realized = _simulate(inputs, replicates, years, rng)
    logger.info(
        "Simulated %s [%s]: %d replicates × %d years, mean λ = %.4f",
        treatment or '<unnamed>', EffectMode(effect_mode).value,
        replicates, years, float(realized.mean()),
    )
    return ScenarioResult(
        treatment=treatment,
        effect_mode=EffectMode(effect_mode),
        inputs=inputs,
        parameters=draw,
        expected=expected,
        growth_rates=realized,
    )


def simulate_growth_rates(
    replicates: int,
    years: int,
    survival1: EstimateLike,
    survival2: EstimateLike,
    survival3: EstimateLike,
    survival4: EstimateLike,
    fecundity: EstimateLike,
    indirect: EstimateLike,
    env_sd: float,
    rng: Optional[np.random.Generator] = None,
    seed: int = 42,
) -> np.ndarray:
    """Simulate a (replicates, years) matrix of realized growth rates.

    Survival pairs are (estimate, se) on the logit scale; fecundity and
    indirect pairs are on the natural scale (indirect = 1 means no effect).

    Args:
        replicates: Number of parameter draws (positive).
        years: Years of environmental noise per draw (positive).
        survival1..survival4: Stage survival (estimate, se), logit scale.
        fecundity: Fecundity (estimate > 0, se).
        indirect: Indirect-effect multiplier (estimate, se).
        env_sd: Environmental SD (>= 0).
        rng: Generator to draw from; a fresh PCG64(seed) if None.
        seed: Seed used only when rng is None.

    Returns:
        Read-only (replicates, years) float64 array.

    Raises:
        InvalidParameterError: On a negative SE, non-positive count, or
            non-positive fecundity estimate. No draws are made.
    """
    inputs = ScenarioInputs(
        survival1=survival1,
        survival2=survival2,
        survival3=survival3,
        survival4=survival4,
        fecundity=fecundity,
        indirect=indirect,
        env_sd=env_sd,
    )
    replicates = check_count(replicates, 'replicates')
    years = check_count(years, 'years')
    if rng is None:
        rng = make_rng(seed)
    _, _, realized = _simulate(inputs, replicates, years, rng)
    return realized
