# File: topconfects/confects/correction.py
# Location: topconfects/topconfects/confects/correction.py
"""
Multiple testing correction for the magnitude search.

Provides:
- apply_correction() — Benjamini-Hochberg adjusted p-values via statsmodels
  multipletests, with NaN p-values treated as non-significant.
- reject_at() — adjusted p-values plus the rejection mask at a target FDR.

This module is intentionally leaf-level: it imports only stdlib, numpy and
statsmodels. No imports from other topconfects modules.
"""

from __future__ import annotations

import logging

import numpy as np
import statsmodels.stats.multitest as smm

logger = logging.getLogger("topconfects")


def apply_correction(pvals: list[float] | np.ndarray) -> np.ndarray:
    """
    Apply Benjamini-Hochberg correction to a sequence of p-values.

    The correction denominator is the length of ``pvals``. NaN p-values are
    replaced by 1.0 before correction so they can never be rejected; a
    warning reports how many were replaced.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values to correct, expected in [0, 1].

    Returns
    -------
    np.ndarray
        BH-adjusted p-values in the same order as input.
    """
    pvals_array = np.asarray(pvals, dtype=float)

    if len(pvals_array) == 0:
        return pvals_array

    nan_mask = np.isnan(pvals_array)
    if nan_mask.any():
        logger.warning(
            f"{int(nan_mask.sum())} of {len(pvals_array)} p-values are NaN; "
            "treating them as 1.0 (not significant)."
        )
        pvals_array = np.where(nan_mask, 1.0, pvals_array)

    pvals_array = np.clip(pvals_array, 0.0, 1.0)
    corrected: np.ndarray = smm.multipletests(pvals_array, method="fdr_bh")[1]
    return corrected


def reject_at(pvals: list[float] | np.ndarray, fdr: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Benjamini-Hochberg rejection set at target FDR ``fdr``.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values.
    fdr : float
        Target False Discovery Rate.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        (reject, adjusted)
        - reject : boolean mask, True where adjusted p-value <= fdr and the
          raw p-value is not NaN.
        - adjusted : BH-adjusted p-values aligned with input.
    """
    pvals_array = np.asarray(pvals, dtype=float)
    adjusted = apply_correction(pvals_array)
    reject = adjusted <= fdr
    # NaN p-values are never significant, even at fdr = 1
    reject[np.isnan(pvals_array)] = False
    return reject, adjusted
