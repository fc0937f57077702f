# File: topconfects/confects/providers/normal.py
# Location: topconfects/topconfects/confects/providers/normal.py
"""
Normal / t distribution p-value provider.

NormalProvider computes closed-form tail probabilities for the null
hypothesis "|effect| <= mag" from an estimated effect and its standard error
(normal distribution, df = inf) or scale (Student t, finite df).

Signed effects (TREAT)
----------------------
Two one-sided tests on the absolute effect, so that rejecting at ``mag``
certifies the true effect exceeds ``mag`` in whichever direction it lies:

    p = sf((|effect| - mag) / se, df) + sf((|effect| + mag) / se, df)

Unsigned effects
----------------
All effects must be non-negative; a single one-sided test is used:

    p = sf((effect - mag) / se, df)

Thread safety
-------------
NormalProvider is thread-safe: pure numpy/scipy with no shared mutable state.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import scipy.stats

from topconfects.confects.base import ConfectsConfig, ConfectsResult, PValueProvider
from topconfects.confects.engine import ConfectsEngine
from topconfects.errors import InvalidArgumentError
from topconfects.utils import broadcast

logger = logging.getLogger("topconfects")


class NormalProvider(PValueProvider):
    """
    P-values from a normal or t distribution of errors.

    Parameters
    ----------
    effect : array-like
        Estimated effects, one per feature.
    se : float or array-like
        Standard errors (or t-distribution scales). Scalar or one per feature.
    df : float or array-like
        Degrees of freedom. ``np.inf`` for the normal distribution.
    signed : bool
        True: effects may take either sign, use the TREAT test.
        False: effects are all non-negative, use a one-sided test.

    Raises
    ------
    LengthMismatchError
        If effect, se and df cannot be broadcast to a common length.
    InvalidArgumentError
        If ``signed=False`` and any effect is negative.
    """

    def __init__(
        self,
        effect: Sequence[float] | np.ndarray,
        se: float | Sequence[float] | np.ndarray,
        df: float | Sequence[float] | np.ndarray = np.inf,
        signed: bool = True,
    ) -> None:
        self.effect, self.se, self.df = broadcast(effect, se, df)
        self.signed = signed

        if not signed and np.any(self.effect < 0):
            n_negative = int(np.sum(self.effect < 0))
            raise InvalidArgumentError(
                f"signed=False requires all effects >= 0, found {n_negative} negative effects",
                "effect",
            )

        self._abs_effect = np.abs(self.effect)

    @property
    def n_features(self) -> int:
        return len(self.effect)

    def evaluate(self, indices: np.ndarray, mag: float) -> np.ndarray:
        idx = np.asarray(indices, dtype=int)
        se_i = self.se[idx]
        df_i = self.df[idx]

        with np.errstate(divide="ignore", invalid="ignore"):
            if self.signed:
                abs_effect_i = self._abs_effect[idx]
                p = _upper_tail((abs_effect_i - mag) / se_i, df_i) + _upper_tail(
                    (abs_effect_i + mag) / se_i, df_i
                )
                return np.minimum(p, 1.0)

            return _upper_tail((self.effect[idx] - mag) / se_i, df_i)

    def max_magnitude(self) -> float | None:
        # At mag >= |effect| the p-value is at least 0.5.
        finite = self._abs_effect[np.isfinite(self._abs_effect)]
        return float(finite.max()) if len(finite) else None

    def feature_bounds(self) -> np.ndarray:
        return self._abs_effect


def _upper_tail(tstat: np.ndarray, df: np.ndarray) -> np.ndarray:
    """P(T > tstat) with T ~ t(df), or standard normal where df is infinite."""
    normal = np.isinf(df)
    if normal.all():
        return scipy.stats.norm.sf(tstat)
    out = np.empty_like(tstat, dtype=float)
    out[normal] = scipy.stats.norm.sf(tstat[normal])
    out[~normal] = scipy.stats.t.sf(tstat[~normal], df=df[~normal])
    return out


def normal_confects(
    effect: Sequence[float] | np.ndarray,
    se: float | Sequence[float] | np.ndarray,
    df: float | Sequence[float] | np.ndarray = np.inf,
    signed: bool = True,
    fdr: float = 0.05,
    step: float = 0.001,
    full: bool = False,
    names: Sequence[str] | None = None,
    max_steps: int = 1_000_000,
) -> ConfectsResult:
    """
    Confident effect sizes from normal or t distributions.

    A general purpose confident effect size function for where a normal or t
    distribution of errors can be assumed. Calculates confident effect sizes
    based on an estimated effect and standard error (normal distribution), or
    mean and scale (t distribution).

    Parameters
    ----------
    effect : array-like
        Estimated effects.
    se : float or array-like
        Standard errors (or, for a t distribution, scales).
    df : float or array-like
        Degrees of freedom for the t distribution; ``np.inf`` for normal.
    signed : bool
        If True effects are signed, use the TREAT test. If False effects are
        all non-negative, use a one-sided test.
    fdr : float
        False Discovery Rate to control for.
    step : float
        Granularity of effect sizes to test.
    full : bool
        Include ``se``, ``df`` and ``fdr_zero`` (FDR-adjusted p-value that the
        effect is non-zero) columns.
    names : sequence of str, optional
        Feature names, added as a ``name`` column.
    max_steps : int
        Hard cap on the number of grid points searched after magnitude 0.

    Returns
    -------
    ConfectsResult
        Table columns: rank, index, confect (signed like the effect), effect,
        [name], [se, df, fdr_zero].

    Examples
    --------
    Find the largest positive or negative z-scores in a collection, and place
    confidence bounds on them that maintain FDR 0.05:

    >>> result = normal_confects([1, -2, 3, -4, 5], se=1, fdr=0.05, full=True)
    >>> result.table[["index", "confect", "effect"]]
    """
    provider = NormalProvider(effect, se, df=df, signed=signed)

    if names is not None and len(names) != provider.n_features:
        raise InvalidArgumentError(
            f"names has length {len(names)}, expected {provider.n_features}", "names"
        )

    engine = ConfectsEngine(ConfectsConfig(fdr=fdr, step=step, full=full, max_steps=max_steps))
    confects = engine.run(provider.n_features, provider, effect_desc="effect size")

    table = confects.table
    index = table["index"].to_numpy()
    ranked_effect = provider.effect[index]
    table["confect"] = np.sign(ranked_effect) * table["confect"]
    table["effect"] = ranked_effect

    if names is not None:
        table["name"] = np.asarray(names, dtype=object)[index]

    if full:
        fdr_zero = table.pop("fdr_zero")
        table["se"] = provider.se[index]
        table["df"] = provider.df[index]
        table["fdr_zero"] = fdr_zero

    if not signed:
        confects.limits = (0.0, None)

    return confects
