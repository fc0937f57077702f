# File: topconfects/confects/__init__.py
# Location: topconfects/topconfects/confects/__init__.py
"""
topconfects.confects — FDR-controlled confident effect size search.

The engine walks a magnitude grid, asking a p-value provider at every grid
point which features can still be declared to exceed that magnitude, and
applies Benjamini-Hochberg correction over the features still in play.
Providers plug in the statistical model: closed-form normal/t tests or
edgeR's quasi-likelihood TREAT tests via rpy2.

Public API
----------
PValueProvider   : Abstract base class for per-feature, per-magnitude p-values
ConfectsConfig   : Search parameters (fdr, step, full, bounds)
ConfectsResult   : Ranked confect table plus metadata
ConfectsEngine   : Runs the magnitude search for one provider
nest_confects    : Functional entry point for an arbitrary p-value function
apply_correction : Benjamini-Hochberg adjustment with NaN handling
"""

from topconfects.confects.base import ConfectsConfig, ConfectsResult, PValueProvider
from topconfects.confects.correction import apply_correction
from topconfects.confects.engine import ConfectsEngine, nest_confects

__all__ = [
    "ConfectsConfig",
    "ConfectsEngine",
    "ConfectsResult",
    "PValueProvider",
    "apply_correction",
    "nest_confects",
]
