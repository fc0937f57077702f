# File: topconfects/confects/engine.py
# Location: topconfects/topconfects/confects/engine.py
"""
ConfectsEngine — FDR-controlled search for confident effect sizes.

The engine takes a feature count n and a p-value function
``pfunc(indices, mag)`` and walks up the magnitude grid 0, step, 2*step, ...
At every grid point it applies Benjamini-Hochberg correction to the features
still in the active set; a feature leaves the set the first time its adjusted
p-value exceeds the FDR target, and its confect is the previous grid point.

Search outline
--------------
1. Magnitude 0: evaluate all n features, BH at q over n. Features not
   rejected get confect = NaN and are never evaluated again.
2. Magnitude k*step (k = 1, 2, ...): evaluate only the active features and
   run BH over the active set alone (denominator = active-set size).
   Rejected features stay; the rest exit with confect = (k-1)*step.
   Providers with per-feature bounds drop a feature, with the same
   confect, once k*step passes its own bound.
3. Stop when the active set is empty, when the next magnitude would exceed
   the search bound, or after max_steps grid points. Features still active
   keep the last magnitude at which they were rejected.

Magnitudes are always computed as ``k * step`` from the integer step count.

Output columns
--------------
  rank     — 1-based, by descending confect (NaN last), ties broken by
             ascending magnitude-0 p-value and then by index
  index    — 0-based feature index in input order
  confect  — largest grid magnitude at which the feature is significant
  fdr_zero — BH-adjusted p-value at magnitude 0 (full mode only)
"""

from __future__ import annotations

import logging
import numbers
from typing import Any, Callable

import numpy as np
import pandas as pd

from topconfects.confects.base import ConfectsConfig, ConfectsResult, PValueProvider
from topconfects.confects.correction import reject_at
from topconfects.errors import InvalidArgumentError, ProviderError

logger = logging.getLogger("topconfects")

PFunc = Callable[[np.ndarray, float], Any]

# Relative slack when comparing a grid magnitude against the search bound, so
# that k*step landing a rounding error above the bound is still evaluated.
_BOUND_SLACK = 1e-9


class ConfectsEngine:
    """
    Runs the confident effect size search for one p-value function.

    Usage
    -----
    >>> engine = ConfectsEngine(ConfectsConfig(fdr=0.05, step=0.01))
    >>> result = engine.run(n, provider)
    >>> result.table.head()

    Parameters
    ----------
    config : ConfectsConfig
        Search parameters. Validated eagerly at construction.

    Raises
    ------
    InvalidArgumentError
        If the configuration is out of range.
    """

    def __init__(self, config: ConfectsConfig) -> None:
        config.validate()
        self._config = config

    @property
    def config(self) -> ConfectsConfig:
        return self._config

    def run(self, n: int, pfunc: PFunc, effect_desc: str = "magnitude") -> ConfectsResult:
        """
        Find the confident effect size of every feature.

        Parameters
        ----------
        n : int
            Number of features. Indices passed to ``pfunc`` are in 0..n-1.
        pfunc : callable
            ``pfunc(indices, mag) -> p-values``. PValueProvider instances
            additionally receive prepare()/finalize() calls and may offer a
            search bound via max_magnitude().
        effect_desc : str
            Label stored on the result.

        Returns
        -------
        ConfectsResult
            One row per feature, ordered by rank.

        Raises
        ------
        InvalidArgumentError
            If n is not a non-negative integer or disagrees with the
            provider's feature count. Raised before any provider call.
        ProviderError
            If ``pfunc`` raises or returns the wrong number of p-values. The
            search is aborted and no partial table is returned.
        """
        if isinstance(n, bool) or not isinstance(n, numbers.Integral) or n < 0:
            raise InvalidArgumentError(f"n must be a non-negative integer, got {n!r}", "n")
        n = int(n)

        is_provider = isinstance(pfunc, PValueProvider)
        if is_provider and pfunc.n_features != n:
            raise InvalidArgumentError(
                f"n={n} does not match the provider's feature count ({pfunc.n_features})", "n"
            )

        cfg = self._config
        if n == 0:
            logger.warning("No features provided to ConfectsEngine.")
            return self._build_result(
                np.empty(0, dtype=int),
                np.empty(0),
                np.empty(0),
                np.empty(0),
                effect_desc,
                n_steps=0,
            )

        logger.info(
            f"Confident effect sizes: searching {n} features at FDR {cfg.fdr:g}, step {cfg.step:g}"
        )

        if not is_provider:
            return self._search(n, pfunc, effect_desc)

        pfunc.prepare(n)
        try:
            return self._search(n, pfunc, effect_desc)
        finally:
            pfunc.finalize()

    def _search(self, n: int, pfunc: PFunc, effect_desc: str) -> ConfectsResult:
        cfg = self._config
        step = float(cfg.step)
        all_indices = np.arange(n, dtype=int)

        p_zero = self._evaluate(pfunc, all_indices, 0.0)
        reject, fdr_zero = reject_at(p_zero, cfg.fdr)

        confect = np.full(n, np.nan)
        active = all_indices[reject]
        logger.info(f"Magnitude 0: {len(active)}/{n} features significant at FDR {cfg.fdr:g}")

        bound = self._search_bound(pfunc)
        if bound is not None:
            logger.debug(f"Search bound: magnitude <= {bound:g}")
        feature_bounds = self._feature_bounds(pfunc, n)

        k = 0
        while len(active) > 0 and k < cfg.max_steps:
            mag = (k + 1) * step
            if bound is not None and mag > bound + _BOUND_SLACK * max(step, abs(bound)):
                break
            k += 1

            if feature_bounds is not None:
                own = feature_bounds[active]
                beyond = mag > own + _BOUND_SLACK * np.maximum(step, np.abs(own))
                if beyond.any():
                    confect[active[beyond]] = (k - 1) * step
                    active = active[~beyond]
                    if len(active) == 0:
                        break

            p_active = self._evaluate(pfunc, active, mag)
            keep, _ = reject_at(p_active, cfg.fdr)

            exiting = active[~keep]
            if len(exiting) > 0:
                confect[exiting] = (k - 1) * step
            active = active[keep]
            logger.debug(
                f"Magnitude {mag:g}: {len(exiting)} features exited, {len(active)} still active"
            )

        if len(active) > 0:
            # Still significant at the last magnitude evaluated.
            confect[active] = k * step
            if k >= cfg.max_steps:
                logger.warning(
                    f"Reached max_steps={cfg.max_steps} with {len(active)} features still "
                    f"significant; their confect is capped at {k * step:g}"
                )
            else:
                logger.debug(
                    f"{len(active)} features still significant at the search bound; "
                    f"confect capped at {k * step:g}"
                )

        return self._build_result(all_indices, confect, p_zero, fdr_zero, effect_desc, k)

    def _search_bound(self, pfunc: PFunc) -> float | None:
        """Configured max_magnitude, else the provider's own bound, else None."""
        if self._config.max_magnitude is not None:
            return float(self._config.max_magnitude)
        if isinstance(pfunc, PValueProvider):
            value = pfunc.max_magnitude()
            if value is not None and np.isfinite(value):
                return max(float(value), 0.0)
        return None

    @staticmethod
    def _feature_bounds(pfunc: PFunc, n: int) -> np.ndarray | None:
        """The provider's per-feature bounds, if it offers them."""
        if not isinstance(pfunc, PValueProvider):
            return None
        bounds = pfunc.feature_bounds()
        if bounds is None:
            return None
        bounds = np.asarray(bounds, dtype=float).ravel()
        if len(bounds) != n:
            raise InvalidArgumentError(
                f"feature_bounds() returned {len(bounds)} values, expected {n}", "feature_bounds"
            )
        # NaN bounds never cut a feature off
        return np.where(np.isnan(bounds), np.inf, bounds)

    @staticmethod
    def _evaluate(pfunc: PFunc, indices: np.ndarray, mag: float) -> np.ndarray:
        """Call the provider, wrapping any failure in ProviderError."""
        try:
            pvals = pfunc(indices, mag)
        except Exception as exc:
            raise ProviderError(mag, exc) from exc

        pvals = np.asarray(pvals, dtype=float).ravel()
        if len(pvals) != len(indices):
            raise ProviderError(
                mag,
                ValueError(f"expected {len(indices)} p-values, got {len(pvals)}"),
            )
        return pvals

    def _build_result(
        self,
        indices: np.ndarray,
        confect: np.ndarray,
        p_zero: np.ndarray,
        fdr_zero: np.ndarray,
        effect_desc: str,
        n_steps: int,
    ) -> ConfectsResult:
        cfg = self._config

        # lexsort: last key is primary
        confect_key = np.where(np.isnan(confect), np.inf, -confect)
        p_key = np.where(np.isnan(p_zero), 1.0, p_zero)
        order = np.lexsort((indices, p_key, confect_key))

        table = pd.DataFrame(
            {
                "rank": np.arange(1, len(indices) + 1, dtype=int),
                "index": indices[order],
                "confect": confect[order],
            }
        )
        if cfg.full:
            table["fdr_zero"] = fdr_zero[order]

        n_sig = int(np.sum(~np.isnan(confect)))
        max_confect = float(np.nanmax(confect)) if n_sig else float("nan")
        logger.info(
            f"Confident effect sizes complete: {n_sig}/{len(indices)} features significant, "
            f"{n_steps} steps, largest confect {max_confect:g}"
        )

        return ConfectsResult(
            table=table,
            effect_desc=effect_desc,
            fdr=cfg.fdr,
            step=cfg.step,
            extra={"n_steps": n_steps},
        )


def nest_confects(
    n: int,
    pfunc: PFunc,
    fdr: float = 0.05,
    step: float = 0.001,
    full: bool = False,
    max_magnitude: float | None = None,
    max_steps: int = 1_000_000,
) -> ConfectsResult:
    """
    Confident effect sizes from an arbitrary p-value function.

    For every magnitude on the grid 0, step, 2*step, ..., find the largest
    set of features that can be declared to have an effect larger than that
    magnitude while controlling the FDR at ``fdr``. Each feature's confect is
    the largest magnitude at which it belongs to such a set, so for any
    cutoff c, the features with confect >= c form a set whose effects all
    exceed c at the given FDR.

    Parameters
    ----------
    n : int
        Number of features.
    pfunc : callable
        ``pfunc(indices, mag)`` returning one p-value per index for the null
        hypothesis "effect magnitude <= mag". Must be non-decreasing in mag.
    fdr : float
        False Discovery Rate to control for, in (0, 1].
    step : float
        Granularity of magnitudes to test, > 0.
    full : bool
        Include ``fdr_zero``, the FDR-adjusted p-value that the effect is
        non-zero.
    max_magnitude : float, optional
        Largest magnitude to test. Defaults to the provider's own bound if
        it offers one, otherwise the search runs until no feature remains
        significant.
    max_steps : int
        Hard cap on the number of grid points after magnitude 0.

    Returns
    -------
    ConfectsResult

    Raises
    ------
    InvalidArgumentError
        If step <= 0, fdr is outside (0, 1], or n is invalid.
    ProviderError
        If ``pfunc`` fails during the search.
    """
    config = ConfectsConfig(
        fdr=fdr,
        step=step,
        full=full,
        max_magnitude=max_magnitude,
        max_steps=max_steps,
    )
    return ConfectsEngine(config).run(n, pfunc)
