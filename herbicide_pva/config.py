"""Configuration system for Herbicide-PVA.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → ad-hoc overrides (e.g. CLI flags)

Treatments are listed by name, each with six [estimate, se] pairs:

    treatments:
      untreated:
        survival1: [1.00, 0.10]    # logit scale
        ...
        fecundity: [50.0, 5.0]     # natural scale
        indirect:  [1.00, 0.00]    # natural scale, 1 = no effect

build_scenarios() expands treatments into the simulated scenario list:
the baseline once (direct only), every other treatment twice
(direct, direct+indirect).
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from scipy.stats import norm

from herbicide_pva.rng import STREAM_POLICIES
from herbicide_pva.types import (
    VITAL_RATES,
    EffectMode,
    InvalidParameterError,
    ScenarioInputs,
    VitalRateEstimate,
    check_count,
)

# Warn when an indirect draw has more than this chance of being negative
NEGATIVE_INDIRECT_WARN_PROB = 1e-3


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisSection:
    """Monte Carlo size, seeding, and the shared environmental SD."""
    replicates: int = 10000
    years: int = 1
    seed: int = 42
    baseline: str = 'untreated'
    env_sd: float = 0.0             # σ_e on the log scale, shared by all scenarios
    stream_policy: str = 'sequential'  # 'sequential', 'independent', 'common'
    parallel_workers: int = 1       # >1 requires a non-sequential stream policy


@dataclass
class ProjectionSection:
    """Abundance projection through the simulated years (optional)."""
    enabled: bool = False
    initial_abundance: int = 100
    quasi_extinction: int = 0       # Final abundance at or below this counts as extinct
    ceiling: Optional[int] = None   # Cap on abundance after each year (None = unbounded)


@dataclass
class PVAConfig:
    """Complete analysis configuration.

    Load from YAML via `load_config()`. `treatments` maps each treatment
    name to {vital_rate: [estimate, se]}.
    """
    analysis: AnalysisSection = field(default_factory=AnalysisSection)
    projection: ProjectionSection = field(default_factory=ProjectionSection)
    treatments: Dict[str, Dict[str, List[float]]] = field(default_factory=dict)


@dataclass(frozen=True)
class Scenario:
    """One simulated (treatment, effect mode) combination."""
    treatment: str
    effect_mode: EffectMode
    inputs: ScenarioInputs

    @property
    def key(self) -> str:
        return f"{self.treatment}/{self.effect_mode.value}"


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> PVAConfig:
    """Convert a merged YAML dict to a PVAConfig."""
    sections: Dict[str, Any] = {}
    section_map = {
        'analysis': AnalysisSection,
        'projection': ProjectionSection,
    }
    for key, cls in section_map.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    treatments = data.get('treatments') or {}
    if not isinstance(treatments, dict):
        raise InvalidParameterError(
            'treatments', f"must be a mapping of name → vital rates, got {type(treatments).__name__}"
        )
    sections['treatments'] = {
        str(name): dict(rates) if isinstance(rates, dict) else rates
        for name, rates in treatments.items()
    }
    return PVAConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _treatment_estimates(name: str, rates: Any, baseline: bool) -> Dict[str, VitalRateEstimate]:
    """Parse and validate one treatment's six [estimate, se] pairs."""
    if not isinstance(rates, dict):
        raise InvalidParameterError(
            f"treatments.{name}", "must be a mapping of vital rate → [estimate, se]"
        )
    required = VITAL_RATES[:-1] if baseline else VITAL_RATES
    missing = [r for r in required if r not in rates]
    if missing:
        raise InvalidParameterError(
            f"treatments.{name}", f"missing vital rates {missing}"
        )
    estimates = {}
    for rate in required:
        field_name = f"treatments.{name}.{rate}"
        est = VitalRateEstimate.coerce(rates[rate], field_name)
        est.validate(field_name)
        estimates[rate] = est
    if estimates['fecundity'].estimate <= 0:
        raise InvalidParameterError(
            f"treatments.{name}.fecundity.estimate",
            f"must be > 0, got {estimates['fecundity'].estimate}",
        )
    return estimates


def validate_config(config: PVAConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Replicate/year counts are positive, seed non-negative
      - env_sd is finite and non-negative
      - Stream policy is known and compatible with parallel_workers
      - Baseline is one of the treatments
      - Every treatment has six valid [estimate, se] pairs

    Warns (UserWarning) when a treatment's indirect multiplier has a
    non-negligible probability of negative draws.
    """
    a = config.analysis
    check_count(a.replicates, 'analysis.replicates')
    check_count(a.years, 'analysis.years')
    check_count(a.parallel_workers, 'analysis.parallel_workers')
    if a.seed < 0:
        raise InvalidParameterError('analysis.seed', "must be non-negative")
    if not (a.env_sd >= 0) or a.env_sd == float('inf'):
        raise InvalidParameterError(
            'analysis.env_sd', f"must be finite and >= 0, got {a.env_sd}"
        )
    if a.stream_policy not in STREAM_POLICIES:
        raise InvalidParameterError(
            'analysis.stream_policy',
            f"must be one of {STREAM_POLICIES}, got '{a.stream_policy}'",
        )
    if a.parallel_workers > 1 and a.stream_policy == 'sequential':
        raise InvalidParameterError(
            'analysis.parallel_workers',
            "parallel runs need stream_policy 'independent' or 'common'",
        )

    p = config.projection
    check_count(p.initial_abundance, 'projection.initial_abundance')
    if p.quasi_extinction < 0:
        raise InvalidParameterError(
            'projection.quasi_extinction', "must be non-negative"
        )
    if p.ceiling is not None:
        check_count(p.ceiling, 'projection.ceiling')

    if not config.treatments:
        raise InvalidParameterError('treatments', "at least one treatment required")
    if a.baseline not in config.treatments:
        raise InvalidParameterError(
            'analysis.baseline',
            f"'{a.baseline}' is not a treatment; have {list(config.treatments)}",
        )

    for name, rates in config.treatments.items():
        is_baseline = name == a.baseline
        estimates = _treatment_estimates(name, rates, is_baseline)
        if is_baseline:
            continue
        indirect = estimates['indirect']
        if indirect.se > 0:
            p_negative = float(norm.cdf(0.0, loc=indirect.estimate, scale=indirect.se))
            if p_negative > NEGATIVE_INDIRECT_WARN_PROB:
                warnings.warn(
                    f"treatments.{name}.indirect: P(draw < 0) = {p_negative:.3g}; "
                    f"negative multipliers yield negative growth rates",
                    UserWarning,
                    stacklevel=2,
                )


# ═══════════════════════════════════════════════════════════════════════
# SCENARIO CONSTRUCTION
# ═══════════════════════════════════════════════════════════════════════

def build_scenarios(config: PVAConfig) -> List[Scenario]:
    """Expand treatments into the ordered list of simulated scenarios.

    The baseline has no indirect pathway, so it is simulated once in
    DIRECT mode. Every other treatment yields a DIRECT scenario (indirect
    pinned to 1 with zero SE) followed by a DIRECT_INDIRECT scenario.
    """
    env_sd = config.analysis.env_sd
    baseline = config.analysis.baseline
    scenarios: List[Scenario] = []
    for name, rates in config.treatments.items():
        is_baseline = name == baseline
        estimates = _treatment_estimates(name, rates, is_baseline)
        estimates.pop('indirect', None)
        direct = ScenarioInputs(env_sd=env_sd, **estimates)
        scenarios.append(Scenario(name, EffectMode.DIRECT, direct))
        if not is_baseline:
            both = ScenarioInputs(
                env_sd=env_sd,
                indirect=VitalRateEstimate.coerce(
                    rates['indirect'], f"treatments.{name}.indirect"
                ),
                **estimates,
            )
            scenarios.append(Scenario(name, EffectMode.DIRECT_INDIRECT, both))
    return scenarios


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> PVAConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional dict of overrides (same layout as the YAML).

    Returns:
        Validated PVAConfig.

    Raises:
        FileNotFoundError: If base_path or scenario_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config
