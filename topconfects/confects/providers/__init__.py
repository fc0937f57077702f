# File: topconfects/confects/providers/__init__.py
# Location: topconfects/topconfects/confects/providers/__init__.py
"""
P-value provider factory for the providers subpackage.

Usage
-----
>>> from topconfects.confects.providers import get_provider
>>> provider = get_provider("normal", effect=[1.0, -2.0], se=1.0)
>>> result = ConfectsEngine(ConfectsConfig()).run(provider.n_features, provider)

Importing this module does NOT initialize R or import rpy2; provider imports
are deferred to get_provider() so that environments without R can still use
the normal provider.
"""

from __future__ import annotations

from typing import Any

from topconfects.confects.base import PValueProvider

__all__ = ["PValueProvider", "get_provider"]


def get_provider(name: str, **kwargs: Any) -> PValueProvider:
    """
    Factory function for p-value providers.

    Parameters
    ----------
    name : str
        Provider selector:
        - ``"normal"`` — NormalProvider (normal / t distribution, numpy/scipy).
        - ``"edger"``  — EdgeRQLProvider (edgeR quasi-likelihood via rpy2).
    **kwargs
        Passed to the provider constructor.

    Returns
    -------
    PValueProvider
        Provider instance. The edgeR provider still needs
        ``detect_environment()`` and ``check_fit()`` before use.

    Raises
    ------
    ValueError
        If ``name`` is not one of the recognised values.
    """
    if name == "normal":
        from topconfects.confects.providers.normal import NormalProvider

        return NormalProvider(**kwargs)

    if name == "edger":
        # Importing the module does not initialise R; rpy2 loads on first use.
        from topconfects.confects.providers.edger import EdgeRQLProvider

        return EdgeRQLProvider(**kwargs)

    raise ValueError(f"Unknown p-value provider: '{name}'. Valid values: 'normal', 'edger'.")
