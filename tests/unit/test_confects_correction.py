"""
Unit tests for the Benjamini-Hochberg correction used by the magnitude search.

Verifies that apply_correction() matches direct statsmodels multipletests()
calls and that NaN p-values are treated as non-significant.
"""

from __future__ import annotations

import logging

import numpy as np
import pytest
import statsmodels.stats.multitest as smm

from topconfects.confects.correction import apply_correction, reject_at


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _smm_fdr(pvals):
    """Direct smm FDR call — the ground truth reference."""
    return smm.multipletests(np.asarray(pvals, dtype=float), method="fdr_bh")[1]


# ---------------------------------------------------------------------------
# FDR parity tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestApplyCorrection:
    """apply_correction() matches smm.multipletests(method='fdr_bh')."""

    def test_parity_typical_values(self):
        pvals = [0.01, 0.05, 0.1, 0.2, 0.5, 0.9]
        np.testing.assert_array_almost_equal(apply_correction(pvals), _smm_fdr(pvals), decimal=15)

    def test_parity_small_values(self):
        pvals = [1e-10, 1e-8, 1e-6, 0.001, 0.01]
        np.testing.assert_array_almost_equal(apply_correction(pvals), _smm_fdr(pvals), decimal=15)

    def test_order_preserved(self):
        pvals = [0.5, 0.001, 0.2]
        result = apply_correction(pvals)
        np.testing.assert_array_almost_equal(result, _smm_fdr(pvals))
        assert result[1] == pytest.approx(0.003)

    def test_empty_input(self):
        result = apply_correction([])
        assert len(result) == 0

    def test_nan_treated_as_one(self, caplog):
        with caplog.at_level(logging.WARNING, logger="topconfects"):
            result = apply_correction([0.001, np.nan, 0.01])
        np.testing.assert_array_almost_equal(result, _smm_fdr([0.001, 1.0, 0.01]))
        assert "NaN" in caplog.text

    def test_values_clipped_to_unit_interval(self):
        result = apply_correction([1.0000000002, 0.01])
        assert np.all(result <= 1.0)


@pytest.mark.unit
class TestRejectAt:
    """reject_at() returns the BH rejection mask at a target FDR."""

    def test_rejection_mask(self):
        reject, adjusted = reject_at([0.001, 0.02, 0.04, 0.5], 0.05)
        # 0.04 adjusts to 0.04 * 4 / 3 = 0.0533, above the target
        np.testing.assert_array_equal(reject, [True, True, False, False])
        np.testing.assert_array_almost_equal(adjusted, _smm_fdr([0.001, 0.02, 0.04, 0.5]))

    def test_boundary_is_inclusive(self):
        reject, _ = reject_at([0.05], 0.05)
        assert reject[0]

    def test_nan_never_rejected_at_fdr_one(self):
        reject, adjusted = reject_at([np.nan, 0.0], 1.0)
        np.testing.assert_array_equal(reject, [False, True])
        assert adjusted[0] == 1.0

    def test_nan_never_rejected(self):
        reject, _ = reject_at([np.nan, 0.0, 0.01], 0.5)
        np.testing.assert_array_equal(reject, [False, True, True])
