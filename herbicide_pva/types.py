"""Core data types for Herbicide-PVA.

This module is the SINGLE SOURCE OF TRUTH for:
  - Vital-rate names and their sampling scales
  - Numeric constants (sex ratio, fecundity floor, survival clip bounds)
  - EffectMode enumeration
  - Value types passed between modules (VitalRateEstimate, ScenarioInputs,
    ParameterDraw)
  - Error types (InvalidParameterError, SentinelLeakError)

All modules import these types from here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

SURVIVAL_STAGES = ('survival1', 'survival2', 'survival3', 'survival4')
VITAL_RATES = SURVIVAL_STAGES + ('fecundity', 'indirect')

# Only females lay the next generation's eggs (50/50 sex ratio)
SEX_RATIO = 0.5

# Lower bound applied to every fecundity draw
FECUNDITY_FLOOR = float(np.finfo(np.float64).eps)

# Logistic saturates to exactly 0.0 / 1.0 in float64 beyond |logit| ≈ 37
SURVIVAL_MIN = float(np.finfo(np.float64).tiny)
SURVIVAL_MAX = float(np.nextafter(1.0, 0.0))


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class InvalidParameterError(ValueError):
    """Invalid scenario or run configuration. `field` names the culprit."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class SentinelLeakError(AssertionError):
    """An output matrix was not fully populated (internal defect)."""


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class EffectMode(str, Enum):
    """Which herbicide pathways a scenario includes.

    DIRECT:          survival effects only; indirect multiplier pinned to 1
    DIRECT_INDIRECT: survival effects × competitive-release multiplier
    """
    DIRECT = 'direct'
    DIRECT_INDIRECT = 'direct+indirect'


# ═══════════════════════════════════════════════════════════════════════
# VALUE TYPES
# ═══════════════════════════════════════════════════════════════════════

EstimateLike = Union['VitalRateEstimate', Tuple[float, float]]


@dataclass(frozen=True)
class VitalRateEstimate:
    """Point estimate and standard error on the rate's sampling scale.

    Logit scale for the four survivals; natural scale for fecundity and
    the indirect multiplier.
    """
    estimate: float
    se: float = 0.0

    @classmethod
    def coerce(cls, value: EstimateLike, field: str = 'estimate') -> 'VitalRateEstimate':
        """Accept a VitalRateEstimate or an (estimate, se) pair."""
        if isinstance(value, cls):
            return value
        try:
            estimate, se = value
        except (TypeError, ValueError):
            raise InvalidParameterError(
                field, f"expected an (estimate, se) pair, got {value!r}"
            ) from None
        return cls(float(estimate), float(se))

    def validate(self, field: str) -> None:
        if not math.isfinite(self.estimate):
            raise InvalidParameterError(
                f"{field}.estimate", f"must be finite, got {self.estimate}"
            )
        if not math.isfinite(self.se) or self.se < 0:
            raise InvalidParameterError(
                f"{field}.se", f"must be finite and >= 0, got {self.se}"
            )


NO_INDIRECT_EFFECT = VitalRateEstimate(1.0, 0.0)


@dataclass(frozen=True)
class ScenarioInputs:
    """Six vital-rate estimates plus the shared environmental SD.

    Validated on construction; any bad field raises InvalidParameterError
    before a single draw is made.
    """
    survival1: VitalRateEstimate
    survival2: VitalRateEstimate
    survival3: VitalRateEstimate
    survival4: VitalRateEstimate
    fecundity: VitalRateEstimate
    indirect: VitalRateEstimate = NO_INDIRECT_EFFECT
    env_sd: float = 0.0

    def __post_init__(self):
        for name in VITAL_RATES:
            value = VitalRateEstimate.coerce(getattr(self, name), name)
            value.validate(name)
            object.__setattr__(self, name, value)
        if self.fecundity.estimate <= 0:
            raise InvalidParameterError(
                'fecundity.estimate',
                f"must be > 0, got {self.fecundity.estimate}",
            )
        env_sd = float(self.env_sd)
        if not math.isfinite(env_sd) or env_sd < 0:
            raise InvalidParameterError(
                'env_sd', f"must be finite and >= 0, got {self.env_sd}"
            )
        object.__setattr__(self, 'env_sd', env_sd)

    def direct_only(self) -> 'ScenarioInputs':
        """Copy of these inputs with the indirect multiplier pinned to 1."""
        return ScenarioInputs(
            survival1=self.survival1,
            survival2=self.survival2,
            survival3=self.survival3,
            survival4=self.survival4,
            fecundity=self.fecundity,
            indirect=NO_INDIRECT_EFFECT,
            env_sd=self.env_sd,
        )


@dataclass(frozen=True)
class ParameterDraw:
    """Joint parameter draws, one element per replicate.

    Survivals are on the probability scale in (0, 1); fecundity is
    floored at FECUNDITY_FLOOR. All arrays have shape (replicates,).
    """
    survival1: np.ndarray
    survival2: np.ndarray
    survival3: np.ndarray
    survival4: np.ndarray
    fecundity: np.ndarray
    indirect: np.ndarray

    @property
    def n_replicates(self) -> int:
        return int(self.fecundity.shape[0])

    def as_array(self) -> np.ndarray:
        """(replicates, 6) array in VITAL_RATES column order."""
        return np.column_stack([getattr(self, name) for name in VITAL_RATES])


def check_count(value: int, field: str) -> int:
    """Validate a replicate/year count (positive integer)."""
    if isinstance(value, bool) or int(value) != value or value < 1:
        raise InvalidParameterError(field, f"must be a positive integer, got {value!r}")
    return int(value)
