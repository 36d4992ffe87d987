"""
Tests for the M2 quadratic form and the indices derived from it.
"""

import numpy as np
import pytest
from scipy.stats import chi2, ncx2

from irtfit.fit.exceptions import (
    IllConditionedError,
    InsufficientDegreesOfFreedomError,
    UnsupportedModelError,
)
from irtfit.fit.moments import ExpectedMoments, ObservedMoments
from irtfit.fit.solver import (
    correlation_residuals,
    m2_quadratic_form,
    orthogonal_complement,
    p_value,
    require_srmsr_eligible,
    rmsea,
    rmsea_confidence_interval,
    srmsr,
    srmsr_eligible,
    suppress_residuals,
)
from irtfit.irt.items import DichotomousItem, GradedItem, NominalItem


class TestOrthogonalComplement:
    def test_orthonormal_and_orthogonal(self) -> None:
        rng = np.random.default_rng(0)
        delta = rng.standard_normal((10, 4))

        deltac = orthogonal_complement(delta)

        assert deltac.shape == (10, 6)
        np.testing.assert_allclose(deltac.T @ delta, 0.0, atol=1e-12)
        np.testing.assert_allclose(deltac.T @ deltac, np.eye(6), atol=1e-12)

    @pytest.mark.parametrize("n_free", [5, 7])
    def test_requires_positive_df(self, n_free: int) -> None:
        with pytest.raises(InsufficientDegreesOfFreedomError, match="df"):
            orthogonal_complement(np.ones((5, n_free)))


class TestQuadraticForm:
    def test_identity_weights(self) -> None:
        """With Xi2 = I the statistic is N times the projected residual norm."""
        rng = np.random.default_rng(1)
        delta = rng.standard_normal((6, 2))
        deltac = orthogonal_complement(delta)
        residual = rng.standard_normal(6)

        statistic = m2_quadratic_form(residual, deltac, np.eye(6), 100)

        projection = deltac @ deltac.T
        expected = 100 * residual @ projection @ residual
        np.testing.assert_allclose(statistic, expected)

    def test_residual_in_jacobian_span_is_ignored(self) -> None:
        """Discrepancies explained by parameter changes do not count."""
        rng = np.random.default_rng(2)
        delta = rng.standard_normal((8, 3))
        deltac = orthogonal_complement(delta)
        a = rng.standard_normal((8, 8))
        xi2 = a @ a.T + np.eye(8)

        statistic = m2_quadratic_form(
            delta @ np.array([0.1, -0.2, 0.3]), deltac, xi2, 500
        )
        assert statistic == pytest.approx(0.0, abs=1e-10)

    def test_singular_weights_rejected(self) -> None:
        deltac = orthogonal_complement(np.ones((4, 1)))
        with pytest.raises(IllConditionedError):
            m2_quadratic_form(np.ones(4), deltac, np.zeros((4, 4)), 100)

    def test_nonnegative(self) -> None:
        rng = np.random.default_rng(3)
        deltac = orthogonal_complement(rng.standard_normal((7, 2)))
        a = rng.standard_normal((7, 7))
        xi2 = a @ a.T + 0.1 * np.eye(7)
        for _ in range(10):
            residual = rng.standard_normal(7)
            assert m2_quadratic_form(residual, deltac, xi2, 50) >= 0.0


class TestIndices:
    def test_p_value(self) -> None:
        assert p_value(chi2.ppf(0.95, 5), 5) == pytest.approx(0.05)

    def test_rmsea_formula(self) -> None:
        assert rmsea(30.0, 10, 101) == pytest.approx(np.sqrt(20 / 1000))

    @pytest.mark.parametrize("statistic", [0.0, 3.0, 10.0])
    def test_rmsea_floor_at_zero(self, statistic: float) -> None:
        assert rmsea(statistic, 10, 500) == 0.0

    def test_confidence_interval_brackets_estimate(self) -> None:
        statistic, df, n = 60.0, 20, 400
        lower, upper = rmsea_confidence_interval(statistic, df, n, 0.9)

        assert 0.0 < lower < rmsea(statistic, df, n) < upper

    def test_confidence_bounds_invert_cdf(self) -> None:
        """Each bound's noncentrality puts the statistic at its quantile."""
        statistic, df, n = 60.0, 20, 400
        lower, upper = rmsea_confidence_interval(statistic, df, n, 0.9)

        lambda_lower = lower**2 * n * df
        lambda_upper = upper**2 * n * df
        assert ncx2.cdf(statistic, df, lambda_lower) == pytest.approx(
            0.95, abs=1e-6
        )
        assert ncx2.cdf(statistic, df, lambda_upper) == pytest.approx(
            0.05, abs=1e-6
        )

    def test_good_fit_has_zero_lower_bound(self) -> None:
        lower, upper = rmsea_confidence_interval(5.0, 10, 300, 0.9)
        assert lower == 0.0
        assert upper > 0.0

    def test_zero_statistic(self) -> None:
        assert rmsea_confidence_interval(0.0, 10, 300, 0.9) == (0.0, 0.0)

    def test_wider_interval_at_higher_level(self) -> None:
        narrow = rmsea_confidence_interval(80.0, 20, 400, 0.8)
        wide = rmsea_confidence_interval(80.0, 20, 400, 0.95)
        assert wide[0] < narrow[0]
        assert wide[1] > narrow[1]


class TestCorrelationResiduals:
    def make_moments(self) -> tuple[ObservedMoments, ExpectedMoments]:
        observed = ObservedMoments(
            means=np.array([0.5, 0.5, 0.5]),
            cross=np.array(
                [[0.5, 0.35, 0.25], [0.35, 0.5, 0.3], [0.25, 0.3, 0.5]]
            ),
            n_respondents=100,
        )
        expected = ExpectedMoments(
            e1=np.array([0.5, 0.5, 0.5]),
            e11=np.array([0.5, 0.5, 0.5]),
            e2=np.array(
                [[0.5, 0.3, 0.3], [0.3, 0.5, 0.3], [0.3, 0.3, 0.5]]
            ),
        )
        return observed, expected

    def test_lower_triangle_only(self) -> None:
        observed, expected = self.make_moments()
        residuals = correlation_residuals(observed, expected)

        # Correlations are 4 * (cross - 0.25) for these margins
        np.testing.assert_allclose(
            residuals[np.tril_indices(3, k=-1)], [0.2, -0.2, 0.0], atol=1e-12
        )
        assert np.all(np.isnan(residuals[np.triu_indices(3)]))

    def test_srmsr(self) -> None:
        observed, expected = self.make_moments()
        value = srmsr(correlation_residuals(observed, expected))
        assert value == pytest.approx(np.sqrt(0.08 / 3))

    def test_suppress_one_keeps_pattern(self) -> None:
        observed, expected = self.make_moments()
        residuals = correlation_residuals(observed, expected)

        kept = suppress_residuals(residuals, 1.0)

        np.testing.assert_array_equal(np.isnan(kept), np.isnan(residuals))
        np.testing.assert_array_equal(kept, residuals)

    def test_suppress_threshold(self) -> None:
        observed, expected = self.make_moments()
        residuals = correlation_residuals(observed, expected)

        suppressed = suppress_residuals(residuals, 0.1)

        assert suppressed[1, 0] == pytest.approx(0.2)
        assert suppressed[2, 0] == pytest.approx(-0.2)
        assert np.isnan(suppressed[2, 1])
        # The input is left untouched
        assert not np.isnan(residuals[2, 1])


class TestEligibility:
    def test_ordinal_item_sets(self) -> None:
        items = [
            DichotomousItem(slopes=(1.0,), intercept=0.0),
            GradedItem(slopes=(1.0,), intercepts=(0.5, -0.5)),
        ]
        assert srmsr_eligible(items)
        require_srmsr_eligible(items)

    def test_nominal_not_eligible(self) -> None:
        items = [
            DichotomousItem(slopes=(1.0,), intercept=0.0),
            NominalItem(slopes=(1.0,), intercepts=(0.0, 0.1, 0.2)),
        ]
        assert not srmsr_eligible(items)
        with pytest.raises(UnsupportedModelError, match="nominal"):
            require_srmsr_eligible(items)
