"""
Closed-form derivatives checked against central finite differences.
"""

import numpy as np
import pytest

from irtfit.irt.items import (
    DichotomousItem,
    GeneralizedPartialCreditItem,
    GradedItem,
    IdealPointItem,
    ItemParameters,
    NestedLogitItem,
    NominalItem,
    PartiallyCompensatoryItem,
)

THETA_1D = np.linspace(-2.5, 2.5, 11).reshape(-1, 1)
THETA_2D = np.column_stack(
    [np.linspace(-2.0, 2.0, 7), np.linspace(1.0, -1.5, 7)]
)

ANALYTIC_ITEMS = [
    pytest.param(
        DichotomousItem(
            slopes=(1.2, 0.6), intercept=-0.3, guessing=0.1, upper=0.9
        ),
        THETA_2D,
        id="dich",
    ),
    pytest.param(
        GradedItem(slopes=(1.4,), intercepts=(1.0, 0.1, -0.9)),
        THETA_1D,
        id="graded",
    ),
    pytest.param(
        GeneralizedPartialCreditItem(
            slopes=(0.8, 0.5), intercepts=(0.0, 0.4, -0.3)
        ),
        THETA_2D,
        id="gpcm",
    ),
    pytest.param(
        NominalItem(
            slopes=(1.1,),
            scores=(0.0, 0.8, 2.0),
            intercepts=(0.0, -0.2, 0.5),
        ),
        THETA_1D,
        id="nominal",
    ),
    pytest.param(
        IdealPointItem(slopes=(1.3,), intercept=-0.4), THETA_1D, id="ideal"
    ),
    pytest.param(
        PartiallyCompensatoryItem(
            slopes=(1.0, 1.4), intercepts=(0.3, -0.5), guessing=0.15
        ),
        THETA_2D,
        id="partcomp",
    ),
]


class TestCategoryDerivatives:
    @pytest.mark.parametrize("item,theta", ANALYTIC_ITEMS)
    def test_matches_finite_differences(
        self, item: ItemParameters, theta: np.ndarray
    ) -> None:
        """Closed forms agree with the base-class numerical derivative."""
        analytic = item.category_derivatives(theta)
        numeric = ItemParameters.category_derivatives(item, theta)

        assert analytic.shape == (
            theta.shape[0],
            item.n_parameters,
            item.n_categories,
        )
        np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)

    @pytest.mark.parametrize("item,theta", ANALYTIC_ITEMS)
    def test_category_derivatives_sum_to_zero(
        self, item: ItemParameters, theta: np.ndarray
    ) -> None:
        """Probabilities sum to one, so their derivatives sum to zero."""
        derivatives = item.category_derivatives(theta)
        np.testing.assert_allclose(derivatives.sum(axis=2), 0.0, atol=1e-12)


class TestExpectedScoreDerivative:
    def test_dichotomous_closed_form(self) -> None:
        """For a 2PL, dE[X]/dd = P(1 - P) and dE[X]/da = θ P(1 - P)."""
        item = DichotomousItem(slopes=(1.5,), intercept=0.5)
        p = item.probability_trace(THETA_1D)[:, 1]
        derivative = item.derivative(THETA_1D)

        assert derivative.shape == (THETA_1D.shape[0], 4)
        np.testing.assert_allclose(derivative[:, 0], THETA_1D[:, 0] * p * (1 - p))
        np.testing.assert_allclose(derivative[:, 1], p * (1 - p))

    def test_nested_logit_uses_numeric_fallback(self) -> None:
        """The expected-score derivative matches perturbing the score."""
        item = NestedLogitItem(
            slopes=(1.0,),
            intercept=0.2,
            distractor_scores=(0.0, 0.7, -0.4),
            distractor_intercepts=(0.0, 0.3, -0.2),
        )
        derivative = item.derivative(THETA_1D)

        base = item.to_array()
        step = 1e-6
        for p in range(item.n_parameters):
            plus, minus = base.copy(), base.copy()
            plus[p] += step
            minus[p] -= step
            expected = (
                item.with_parameters(plus).expected_score(THETA_1D)
                - item.with_parameters(minus).expected_score(THETA_1D)
            ) / (2 * step)
            np.testing.assert_allclose(
                derivative[:, p], expected, rtol=1e-4, atol=1e-7
            )
