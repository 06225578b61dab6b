"""Scenario runner and comparative summary statistics.

For each simulated scenario the (replicates, years) growth matrix is
reduced to one across-year mean per replicate. From those:

  mean, sd                      across replicates (sd with n−1)
  ci_2.5 / ci_97.5              95% percentile interval
  ci_16 / ci_84                 Φ(−1) / Φ(1) percentiles (±1 SE equivalent)
  rgr                           mean(scenario) / mean(baseline)
  rgr_ci_2.5 / rgr_ci_97.5      percentiles of the replicate-paired ratio
                                scenario_means[i] / baseline_means[i]

The baseline is simulated once and reported under both effect-mode labels.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm

from herbicide_pva.config import (
    AnalysisSection,
    PVAConfig,
    ProjectionSection,
    Scenario,
    build_scenarios,
    validate_config,
)
from herbicide_pva.model import ScenarioResult, simulate_scenario
from herbicide_pva.projection import projection_table
from herbicide_pva.rng import create_rng_hierarchy
from herbicide_pva.types import VITAL_RATES, EffectMode, check_count

logger = logging.getLogger(__name__)

# Percentile levels (in %) of the ±1 SE interval under normality
PCT_LOWER_1SE = float(100.0 * norm.cdf(-1.0))
PCT_UPPER_1SE = float(100.0 * norm.cdf(1.0))

TABLE_COLUMNS = [
    'name', 'effect_mode', 'mean', 'sd',
    'ci_2.5', 'ci_16', 'ci_84', 'ci_97.5',
    'rgr', 'rgr_ci_2.5', 'rgr_ci_97.5',
]


# ═══════════════════════════════════════════════════════════════════════
# SUMMARY STATISTICS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ScenarioSummary:
    """One row of the comparative result table."""
    name: str
    effect_mode: str
    mean: float
    sd: float
    ci_2_5: float
    ci_16: float
    ci_84: float
    ci_97_5: float
    rgr: float
    rgr_ci_2_5: float
    rgr_ci_97_5: float

    def as_row(self) -> Dict[str, object]:
        return dict(zip(TABLE_COLUMNS, asdict(self).values()))


def relative_growth_rate(
    means: np.ndarray,
    baseline_means: np.ndarray,
) -> Tuple[float, float, float]:
    """RGR point estimate and replicate-paired 95% interval.

    Args:
        means: (replicates,) replicate-mean growth rates of the scenario.
        baseline_means: (replicates,) baseline replicate means, same order.

    Returns:
        (rgr, lower_2.5, upper_97.5).

    Raises:
        ValueError: If the replicate counts differ.
    """
    means = np.asarray(means, dtype=np.float64)
    baseline_means = np.asarray(baseline_means, dtype=np.float64)
    if means.shape != baseline_means.shape:
        raise ValueError(
            f"RGR needs paired replicates: scenario has {means.shape[0]}, "
            f"baseline has {baseline_means.shape[0]}"
        )
    rgr = float(means.mean() / baseline_means.mean())
    ratio = means / baseline_means
    lo, hi = np.percentile(ratio, [2.5, 97.5])
    return rgr, float(lo), float(hi)


def summarize_means(
    name: str,
    effect_mode: EffectMode,
    means: np.ndarray,
    baseline_means: np.ndarray,
) -> ScenarioSummary:
    """Reduce replicate-mean growth rates to one ScenarioSummary."""
    means = np.asarray(means, dtype=np.float64)
    sd = float(means.std(ddof=1)) if means.size > 1 else 0.0
    ci = np.percentile(means, [2.5, PCT_LOWER_1SE, PCT_UPPER_1SE, 97.5])
    rgr, rgr_lo, rgr_hi = relative_growth_rate(means, baseline_means)
    return ScenarioSummary(
        name=name,
        effect_mode=EffectMode(effect_mode).value,
        mean=float(means.mean()),
        sd=sd,
        ci_2_5=float(ci[0]),
        ci_16=float(ci[1]),
        ci_84=float(ci[2]),
        ci_97_5=float(ci[3]),
        rgr=rgr,
        rgr_ci_2_5=rgr_lo,
        rgr_ci_97_5=rgr_hi,
    )


def summarize_results(
    results: Mapping[str, ScenarioResult],
    baseline: str,
) -> List[ScenarioSummary]:
    """Summaries for every result, in order, against the baseline.

    The baseline's single DIRECT run is also reported under the
    DIRECT_INDIRECT label, directly after its DIRECT row.
    """
    baseline_key = f"{baseline}/{EffectMode.DIRECT.value}"
    if baseline_key not in results:
        raise KeyError(f"No result for baseline scenario '{baseline_key}'")
    baseline_means = results[baseline_key].replicate_means

    summaries: List[ScenarioSummary] = []
    for result in results.values():
        means = result.replicate_means
        summaries.append(summarize_means(
            result.treatment, result.effect_mode, means, baseline_means,
        ))
        if result.treatment == baseline:
            summaries.append(summarize_means(
                result.treatment, EffectMode.DIRECT_INDIRECT, means, baseline_means,
            ))
    return summaries


def summary_table(summaries: Sequence[ScenarioSummary]) -> pd.DataFrame:
    """Comparative result table, one row per (treatment, effect mode)."""
    return pd.DataFrame([s.as_row() for s in summaries], columns=TABLE_COLUMNS)


# ═══════════════════════════════════════════════════════════════════════
# SCENARIO RUNNER
# ═══════════════════════════════════════════════════════════════════════

def run_scenarios(
    scenarios: Sequence[Scenario],
    replicates: int,
    years: int,
    seed: int = 42,
    stream_policy: str = 'sequential',
    parallel_workers: int = 1,
) -> Dict[str, ScenarioResult]:
    """Simulate every scenario with its own RNG handle.

    Args:
        scenarios: Scenarios in run order (see config.build_scenarios).
        replicates: Replicates per scenario (shared, so RGR can pair them).
        years: Years per replicate.
        seed: Master seed for the RNG hierarchy.
        stream_policy: 'sequential', 'independent', or 'common'.
        parallel_workers: Thread count; >1 needs a non-sequential policy.

    Returns:
        Dict of scenario key → ScenarioResult, in scenario order.
    """
    replicates = check_count(replicates, 'replicates')
    years = check_count(years, 'years')
    parallel_workers = check_count(parallel_workers, 'parallel_workers')
    if parallel_workers > 1 and stream_policy == 'sequential':
        raise ValueError(
            "parallel_workers > 1 needs stream_policy 'independent' or 'common'"
        )

    keys = [s.key for s in scenarios]
    rngs = create_rng_hierarchy(seed, keys, stream_policy)

    def _run(scenario: Scenario) -> ScenarioResult:
        return simulate_scenario(
            scenario.inputs, replicates, years, rngs[scenario.key],
            treatment=scenario.treatment, effect_mode=scenario.effect_mode,
        )

    if parallel_workers > 1:
        with ThreadPoolExecutor(max_workers=parallel_workers) as pool:
            ordered = list(pool.map(_run, scenarios))
    else:
        ordered = [_run(s) for s in scenarios]
    return dict(zip(keys, ordered))


@dataclass
class AnalysisResult:
    """Everything a run produces: raw results and hand-off tables."""
    results: Dict[str, ScenarioResult]
    table: pd.DataFrame
    projection: Optional[pd.DataFrame] = None


def run_analysis(config: PVAConfig) -> AnalysisResult:
    """Validate, simulate all scenarios, and assemble the result tables."""
    validate_config(config)
    a = config.analysis
    scenarios = build_scenarios(config)
    logger.info(
        "Running %d scenarios from %d treatments (baseline=%s, replicates=%d, "
        "years=%d, env_sd=%g, streams=%s)",
        len(scenarios), len(config.treatments), a.baseline, a.replicates,
        a.years, a.env_sd, a.stream_policy,
    )
    results = run_scenarios(
        scenarios, a.replicates, a.years, seed=a.seed,
        stream_policy=a.stream_policy, parallel_workers=a.parallel_workers,
    )
    table = summary_table(summarize_results(results, a.baseline))

    projection = None
    if config.projection.enabled:
        projection = projection_table(
            results,
            initial_abundance=config.projection.initial_abundance,
            quasi_extinction=config.projection.quasi_extinction,
            seed=a.seed,
            ceiling=config.projection.ceiling,
        )
    return AnalysisResult(results=results, table=table, projection=projection)


def compare_treatments(
    treatments: Mapping[str, object],
    env_sd: float,
    baseline: str = 'untreated',
    replicates: int = 10000,
    years: int = 1,
    seed: int = 42,
    stream_policy: str = 'sequential',
) -> pd.DataFrame:
    """Comparative table straight from treatment estimates.

    Args:
        treatments: name → either {vital_rate: (estimate, se)} or a
            six-tuple of (estimate, se) pairs in the order survival1..4,
            fecundity, indirect.
        env_sd: Shared environmental SD.
        baseline: Name of the untreated baseline treatment.

    Returns:
        DataFrame with TABLE_COLUMNS.
    """
    parsed: Dict[str, Dict[str, object]] = {}
    for name, rates in treatments.items():
        if isinstance(rates, Mapping):
            parsed[name] = dict(rates)
        else:
            rates = list(rates)
            if len(rates) != len(VITAL_RATES):
                raise ValueError(
                    f"treatments.{name}: expected {len(VITAL_RATES)} "
                    f"(estimate, se) pairs, got {len(rates)}"
                )
            parsed[name] = dict(zip(VITAL_RATES, rates))

    config = PVAConfig(
        analysis=AnalysisSection(
            replicates=replicates, years=years, seed=seed, baseline=baseline,
            env_sd=env_sd, stream_policy=stream_policy,
        ),
        projection=ProjectionSection(),
        treatments=parsed,
    )
    return run_analysis(config).table
