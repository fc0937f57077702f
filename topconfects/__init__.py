# File: topconfects/__init__.py
# Location: topconfects/topconfects/__init__.py

"""
topconfects Package.

This package ranks features (genes, proteins, ...) by confident effect size:
for every effect-size magnitude it finds the largest set of features that can
be declared to exceed it while controlling the False Discovery Rate.
"""

from .version import __version__

from topconfects.confects import ConfectsResult, nest_confects
from topconfects.confects.providers.edger import edger_confects
from topconfects.confects.providers.normal import normal_confects

__all__ = [
    "ConfectsResult",
    "__version__",
    "edger_confects",
    "nest_confects",
    "normal_confects",
]
