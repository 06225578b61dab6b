"""Growth-rate compositor.

λ = s₁ × s₂ × s₃ × s₄ × fecundity × indirect × 0.5

Deterministic and vectorised over replicates; all randomness is resolved
by the sampler before this point.
"""

from __future__ import annotations

import numpy as np

from herbicide_pva.types import SEX_RATIO, ParameterDraw


def expected_growth_rate(draw: ParameterDraw) -> np.ndarray:
    """Expected (pre-noise) growth rate per replicate, shape (replicates,)."""
    return (
        draw.survival1
        * draw.survival2
        * draw.survival3
        * draw.survival4
        * draw.fecundity
        * draw.indirect
        * SEX_RATIO
    )
