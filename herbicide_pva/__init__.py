"""Herbicide-PVA: stochastic growth-rate projection for butterfly management.

Compares herbicide/adjuvant management alternatives under:
  - Parameter uncertainty in four stage survivals, fecundity, and an
    indirect competitive-release multiplier
  - Bias-corrected log-normal environmental stochasticity
  - Paired relative growth rates (RGR) against the untreated baseline
"""

__version__ = "0.1.0"
