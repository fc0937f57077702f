"""
Unit tests for the normal / t distribution provider and normal_confects().

Covers:
- closed-form TREAT and one-sided p-values against scipy directly
- sign propagation and ranking on a small z-score collection
- output columns in default and full mode
- argument validation (unsigned with negative effects, length mismatches)
"""

from __future__ import annotations

from unittest.mock import patch

import numpy as np
import pytest
import scipy.stats

from topconfects import normal_confects
from topconfects.confects.providers import get_provider
from topconfects.confects.providers.normal import NormalProvider
from topconfects.errors import InvalidArgumentError, LengthMismatchError


# ---------------------------------------------------------------------------
# NormalProvider p-values
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestNormalProvider:
    """NormalProvider.evaluate() computes the documented tail probabilities."""

    def test_signed_zero_magnitude_is_two_sided(self):
        provider = NormalProvider([2.0, -1.0], 1.0)
        p = provider.evaluate(np.array([0, 1]), 0.0)
        np.testing.assert_allclose(p, 2 * scipy.stats.norm.sf([2.0, 1.0]))

    def test_signed_treat_formula(self):
        provider = NormalProvider([2.0, -3.0], [0.5, 1.0])
        p = provider.evaluate(np.array([0, 1]), 1.0)
        expected = [
            scipy.stats.norm.sf((2.0 - 1.0) / 0.5) + scipy.stats.norm.sf((2.0 + 1.0) / 0.5),
            scipy.stats.norm.sf((3.0 - 1.0) / 1.0) + scipy.stats.norm.sf((3.0 + 1.0) / 1.0),
        ]
        np.testing.assert_allclose(p, expected)

    def test_signed_pvalues_capped_at_one(self):
        provider = NormalProvider([0.0, 0.1], 1.0)
        p = provider.evaluate(np.array([0, 1]), 5.0)
        assert np.all(p <= 1.0)

    def test_unsigned_one_sided(self):
        provider = NormalProvider([1.0, 2.0], 1.0, signed=False)
        p = provider.evaluate(np.array([0, 1]), 0.5)
        np.testing.assert_allclose(p, scipy.stats.norm.sf([0.5, 1.5]))

    def test_t_distribution(self):
        provider = NormalProvider([2.0], 1.0, df=5)
        p = provider.evaluate(np.array([0]), 0.0)
        np.testing.assert_allclose(p, 2 * scipy.stats.t.sf(2.0, df=5))

    def test_mixed_df(self):
        provider = NormalProvider([2.0, 2.0], 1.0, df=[np.inf, 3])
        p = provider.evaluate(np.array([0, 1]), 0.0)
        np.testing.assert_allclose(
            p, [2 * scipy.stats.norm.sf(2.0), 2 * scipy.stats.t.sf(2.0, df=3)]
        )

    def test_requested_order_respected(self):
        provider = NormalProvider([1.0, 2.0, 3.0], 1.0)
        p = provider.evaluate(np.array([2, 0]), 0.0)
        np.testing.assert_allclose(p, 2 * scipy.stats.norm.sf([3.0, 1.0]))

    def test_pvalues_nondecreasing_in_magnitude(self):
        provider = NormalProvider([1.5, -0.5, 4.0], [1.0, 0.3, 2.0], df=[np.inf, 4, 10])
        idx = np.arange(3)
        previous = provider.evaluate(idx, 0.0)
        for mag in np.linspace(0.1, 5.0, 50):
            current = provider.evaluate(idx, mag)
            assert np.all(current >= previous - 1e-12)
            previous = current

    def test_max_magnitude(self):
        provider = NormalProvider([1.0, -7.5, 3.0], 1.0)
        assert provider.max_magnitude() == 7.5
        assert provider.n_features == 3

    def test_factory(self):
        provider = get_provider("normal", effect=[1.0, 2.0], se=1.0)
        assert isinstance(provider, NormalProvider)
        with pytest.raises(ValueError, match="Unknown p-value provider"):
            get_provider("limma")


# ---------------------------------------------------------------------------
# normal_confects
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestNormalConfects:
    """End-to-end behaviour of normal_confects()."""

    def test_z_score_scenario(self, z_scores):
        result = normal_confects(z_scores, se=1, fdr=0.05, step=0.001, full=True)
        table = result.table.set_index("index")

        # |z| = 1 and 2 are not significant after BH over five features
        assert np.isnan(table.loc[0, "confect"])
        assert np.isnan(table.loc[1, "confect"])

        assert table.loc[2, "confect"] > 0
        assert table.loc[3, "confect"] < 0
        assert table.loc[4, "confect"] > 0

        magnitudes = table.loc[[2, 3, 4], "confect"].abs().to_numpy()
        assert np.all(np.diff(magnitudes) >= 0)

        assert result.table["index"].tolist() == [4, 3, 2, 1, 0]
        assert result.table["rank"].tolist() == [1, 2, 3, 4, 5]

    def test_confect_bounded_by_effect(self, z_scores):
        table = normal_confects(z_scores, se=1).table.dropna(subset=["confect"])
        assert np.all(table["confect"].abs() <= table["effect"].abs())

    def test_sign_propagation(self):
        effect = np.array([-6.0, 6.0, -8.0])
        table = normal_confects(effect, se=1, step=0.01).table
        np.testing.assert_array_equal(np.sign(table["confect"]), np.sign(table["effect"]))
        # -6 and 6 tie on confect and p-value, so index order decides
        assert table["index"].tolist() == [2, 0, 1]

    def test_default_columns(self, z_scores):
        table = normal_confects(z_scores, se=1, step=0.01).table
        assert list(table.columns) == ["rank", "index", "confect", "effect"]

    def test_full_columns_with_names(self, z_scores):
        names = ["a", "b", "c", "d", "e"]
        table = normal_confects(z_scores, se=1, step=0.01, full=True, names=names).table
        assert list(table.columns) == [
            "rank",
            "index",
            "confect",
            "effect",
            "name",
            "se",
            "df",
            "fdr_zero",
        ]
        assert table["name"].iloc[0] == "e"
        assert np.all(np.isinf(table["df"]))

    def test_result_metadata(self, z_scores):
        result = normal_confects(z_scores, se=1, step=0.01)
        assert result.effect_desc == "effect size"
        assert result.limits == (None, None)

    def test_unsigned(self):
        result = normal_confects([0.5, 4.0, 6.0], se=1, signed=False, step=0.01)
        table = result.table

        assert result.limits == (0.0, None)
        assert table["index"].iloc[0] == 2
        assert (table["confect"].dropna() >= 0).all()

    def test_unsigned_negative_effect_raises_before_search(self):
        with patch("topconfects.confects.providers.normal.ConfectsEngine") as mock_engine:
            with pytest.raises(InvalidArgumentError) as exc_info:
                normal_confects([1.0, -0.5, 2.0], se=1, signed=False)
        mock_engine.assert_not_called()
        assert exc_info.value.argument == "effect"

    def test_length_mismatch(self):
        with pytest.raises(LengthMismatchError):
            normal_confects([1.0, 2.0, 3.0], se=[1.0, 2.0])

    def test_names_length_mismatch(self):
        with pytest.raises(InvalidArgumentError):
            normal_confects([1.0, 2.0], se=1, names=["only-one"])

    def test_empty_input(self):
        result = normal_confects([], se=1)
        assert len(result.table) == 0
        assert result.n_significant == 0

    def test_confect_never_exceeds_own_effect_at_fdr_one(self):
        effect = np.array([-1.0, 5.0, 0.0])
        table = normal_confects(effect, se=1, fdr=1.0, step=0.1).table.set_index("index")

        assert table.loc[0, "confect"] == pytest.approx(-1.0)
        assert table.loc[1, "confect"] == pytest.approx(5.0)
        assert table.loc[2, "confect"] == pytest.approx(0.0)
        assert np.all(table["confect"].abs() <= table["effect"].abs() + 1e-12)

    def test_feature_bounds_are_abs_effect(self):
        provider = NormalProvider([1.0, -7.5, 3.0], 1.0)
        np.testing.assert_array_equal(provider.feature_bounds(), [1.0, 7.5, 3.0])

    def test_max_steps_passed_through(self, z_scores):
        table = normal_confects(z_scores, se=1, step=0.01, max_steps=3).table
        np.testing.assert_allclose(table["confect"].iloc[:3].abs(), [0.03, 0.03, 0.03])

    def test_invalid_max_steps(self, z_scores):
        with pytest.raises(InvalidArgumentError):
            normal_confects(z_scores, se=1, max_steps=0)
