"""
Tests for observed and model-implied moments.
"""

import itertools

import numpy as np
import pytest

from irtfit.core.constants import MISSING_VALUE
from irtfit.fit.exceptions import MissingInputError
from irtfit.fit.moments import (
    count_moments,
    cumulative_square_transform,
    direct_square_transform,
    evaluate_item_moments,
    expected_moments,
    observed_moments,
    pair_indices,
)
from irtfit.fit.quadrature import build_quadrature
from irtfit.irt.items import (
    DichotomousItem,
    GeneralizedPartialCreditItem,
    GradedItem,
    NominalItem,
)


def mixed_items() -> list:
    return [
        DichotomousItem(slopes=(1.2,), intercept=-0.3),
        GradedItem(slopes=(0.9,), intercepts=(0.8, -0.6)),
        GeneralizedPartialCreditItem(slopes=(1.1,), intercepts=(0.0, 0.2, -0.4)),
        NominalItem(
            slopes=(0.7,), scores=(0.0, 1.4, 2.0), intercepts=(0.0, 0.1, -0.3)
        ),
    ]


class TestPairOrdering:
    def test_lower_triangle_row_major(self) -> None:
        first, second = pair_indices(4)
        assert list(zip(first, second)) == [
            (1, 0),
            (2, 0),
            (2, 1),
            (3, 0),
            (3, 1),
            (3, 2),
        ]

    @pytest.mark.parametrize("n_items,expected", [(1, 1), (2, 3), (5, 15)])
    def test_count(self, n_items: int, expected: int) -> None:
        assert count_moments(n_items) == expected
        assert count_moments(n_items) == n_items + len(pair_indices(n_items)[0])


class TestSquareTransforms:
    def test_rules_agree_on_any_distribution(self) -> None:
        """Both rules compute E[X^2] for integer scores."""
        rng = np.random.default_rng(0)
        probs = rng.dirichlet(np.ones(5), size=20)

        np.testing.assert_allclose(
            cumulative_square_transform(probs), direct_square_transform(probs)
        )

    def test_known_value(self) -> None:
        probs = np.array([[0.2, 0.3, 0.5]])
        np.testing.assert_allclose(cumulative_square_transform(probs), [2.3])


class TestExpectedMoments:
    def test_matches_pattern_enumeration(self) -> None:
        """Integrated moments equal those of the implied pattern distribution."""
        items = mixed_items()
        quad = build_quadrature(1)
        moments = expected_moments(
            evaluate_item_moments(items, quad.points), quad.weights
        )

        traces = [item.probability_trace(quad.points) for item in items]
        n_cats = [item.n_categories for item in items]
        e1 = np.zeros(len(items))
        e2 = np.zeros((len(items), len(items)))
        for pattern in itertools.product(*(range(k) for k in n_cats)):
            conditional = np.prod(
                [traces[j][:, c] for j, c in enumerate(pattern)], axis=0
            )
            prob = quad.weights @ conditional
            x = np.array(pattern, dtype=np.float64)
            e1 += prob * x
            e2 += prob * np.outer(x, x)

        np.testing.assert_allclose(moments.e1, e1, rtol=1e-10)
        np.testing.assert_allclose(moments.e2, e2, rtol=1e-10)
        np.testing.assert_allclose(moments.e11, np.diag(e2), rtol=1e-10)

        first, second = pair_indices(len(items))
        np.testing.assert_allclose(
            moments.vector, np.concatenate([e1, e2[first, second]])
        )

    def test_covariance_is_symmetric(self) -> None:
        quad = build_quadrature(1)
        moments = expected_moments(
            evaluate_item_moments(mixed_items(), quad.points), quad.weights
        )
        np.testing.assert_allclose(moments.covariance, moments.covariance.T)
        assert np.all(np.diag(moments.covariance) > 0)


class TestObservedMoments:
    def test_vector(self) -> None:
        data = np.array([[0, 1, 2], [1, 1, 0], [1, 0, 1], [0, 0, 1]])
        observed = observed_moments(data)

        assert observed.n_respondents == 4
        np.testing.assert_allclose(observed.means, [0.5, 0.5, 1.0])
        # Pairs (1, 0), (2, 0), (2, 1)
        np.testing.assert_allclose(
            observed.vector, [0.5, 0.5, 1.0, 0.25, 0.25, 0.5]
        )

    def test_missing_values_rejected(self) -> None:
        data = np.array([[0, 1], [MISSING_VALUE, 0]])
        with pytest.raises(MissingInputError):
            observed_moments(data)
