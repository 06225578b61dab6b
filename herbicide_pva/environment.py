"""Environmental stochasticity layer.

Each replicate's expected growth rate λ̂ is perturbed year by year with
log-normal noise whose log-mean is bias-corrected downward by σ_e²/2:

    ln λ_y ~ Normal(ln λ̂ − σ_e²/2, σ_e)     →     E[λ_y] = λ̂

Without the correction the realized mean would be λ̂·exp(σ_e²/2).

Noise variates are drawn as one (replicates, years) block in row-major
order, which consumes the stream exactly as a replicate-by-replicate loop
would.
"""

from __future__ import annotations

import logging

import numpy as np

from herbicide_pva.types import check_count

logger = logging.getLogger(__name__)


def bias_corrected_log_mean(expected: np.ndarray, env_sd: float) -> np.ndarray:
    """Log-scale mean ln(λ̂) − σ_e²/2 that preserves E[λ] = λ̂."""
    return np.log(expected) - 0.5 * env_sd ** 2


def realize_growth_rates(
    rng: np.random.Generator,
    expected: np.ndarray,
    env_sd: float,
    years: int,
) -> np.ndarray:
    """Apply environmental noise to per-replicate expected growth rates.

    Args:
        rng: Generator owned by the scenario.
        expected: (replicates,) expected growth rates λ̂.
        env_sd: Environmental SD σ_e on the log scale (>= 0).
        years: Number of simulated years per replicate.

    Returns:
        (replicates, years) realized growth rates. With env_sd == 0 every
        row repeats its λ̂ exactly.

    Notes:
        Non-positive λ̂ (possible only through a negative indirect
        multiplier draw) has no logarithm. Those rows get the equivalent
        multiplicative form λ̂ × exp(σ_e·z − σ_e²/2), which keeps their sign.
    """
    years = check_count(years, 'years')
    if env_sd < 0:
        raise ValueError(f"env_sd must be >= 0, got {env_sd}")
    expected = np.asarray(expected, dtype=np.float64)

    # Always consume the noise block so stream position is independent of σ_e
    z = rng.standard_normal((expected.shape[0], years))
    if env_sd == 0:
        return np.repeat(expected[:, None], years, axis=1)

    positive = expected > 0
    n_bad = int(expected.size - np.count_nonzero(positive))
    if n_bad:
        logger.warning(
            "%d of %d replicates have non-positive expected growth rate; "
            "applying multiplicative noise without the log transform",
            n_bad, expected.size,
        )

    with np.errstate(divide='ignore', invalid='ignore'):
        log_mean = bias_corrected_log_mean(expected, env_sd)
        realized = np.where(
            positive[:, None],
            np.exp(log_mean[:, None] + env_sd * z),
            expected[:, None] * np.exp(env_sd * z - 0.5 * env_sd ** 2),
        )
    return realized
