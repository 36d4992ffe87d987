"""
Observed and model-implied univariate/bivariate moments.

Moments are taken of the item scores X_j (0-indexed category codes). The
moment vector stacks the J means followed by the J(J-1)/2 cross-products
E[X_i X_j], i > j, in ``pair_indices`` order. Every component (observed
moments, expected moments, Jacobian rows, Xi2 rows/columns) uses that
ordering.

Model-implied moments integrate conditional quantities over the latent
prior:
    E1_j  = Σ_q w_q E[X_j | θ_q]
    E11_j = Σ_q w_q E[X_j^2 | θ_q]
    E2_ij = Σ_q w_q E[X_i | θ_q] E[X_j | θ_q]     (local independence)
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from irtfit.core.constants import MISSING_VALUE
from irtfit.fit.exceptions import MissingInputError, UnsupportedModelError
from irtfit.irt.enums import ItemType
from irtfit.irt.items import ItemParameters

ORDINAL_ITEM_TYPES = frozenset(
    {
        ItemType.DICH,
        ItemType.GRADED,
        ItemType.GPCM,
        ItemType.IDEAL,
        ItemType.PARTCOMP,
    }
)
NOMINAL_ITEM_TYPES = frozenset({ItemType.NOMINAL, ItemType.NESTLOGIT})


def cumulative_square_transform(
    probs: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    E[X^2 | θ] from the survival function of ordered categories.

    E[X^2] = Σ_{k>=1} (2k - 1) P(X >= k)
    """
    n_categories = probs.shape[1]
    survival = np.cumsum(probs[:, ::-1], axis=1)[:, ::-1]
    coefficients = 2.0 * np.arange(n_categories) - 1.0
    coefficients[0] = 0.0
    result: NDArray[np.float64] = survival @ coefficients
    return result


def direct_square_transform(
    probs: NDArray[np.float64],
) -> NDArray[np.float64]:
    """E[X^2 | θ] = Σ_k k^2 P(X = k) for unordered categories."""
    scores = np.arange(probs.shape[1], dtype=np.float64)
    result: NDArray[np.float64] = probs @ scores**2
    return result


SQUARE_TRANSFORMS: dict[
    ItemType, Callable[[NDArray[np.float64]], NDArray[np.float64]]
] = {
    **{t: cumulative_square_transform for t in ORDINAL_ITEM_TYPES},
    **{t: direct_square_transform for t in NOMINAL_ITEM_TYPES},
}


def pair_indices(n_items: int) -> tuple[NDArray[np.intp], NDArray[np.intp]]:
    """
    Item pairs (i, j), i > j, in moment-vector order.

    Returns:
        Tuple of (first, second) index arrays, each of length J(J-1)/2.
    """
    first, second = np.tril_indices(n_items, k=-1)
    return first, second


def count_moments(n_items: int) -> int:
    """Length of the moment vector, J + J(J-1)/2."""
    return n_items + n_items * (n_items - 1) // 2


@dataclass(frozen=True)
class ItemMoments:
    """
    Conditional item moments at every quadrature node.

    Attributes:
        expected: E[X_j | θ_q], shape (n_points, n_items).
        expected_square: E[X_j^2 | θ_q], shape (n_points, n_items).
    """

    expected: NDArray[np.float64]
    expected_square: NDArray[np.float64]

    @property
    def n_items(self) -> int:
        return self.expected.shape[1]


def evaluate_item_moments(
    items: Sequence[ItemParameters], points: NDArray[np.float64]
) -> ItemMoments:
    """
    Evaluate each item's conditional moments at the quadrature nodes.

    The second moment uses the item type's category transform.

    Raises:
        UnsupportedModelError: If an item type has no transform.
    """
    n_points = points.shape[0]
    expected = np.empty((n_points, len(items)), dtype=np.float64)
    expected_square = np.empty_like(expected)

    for j, item in enumerate(items):
        transform = SQUARE_TRANSFORMS.get(item.item_type)
        if transform is None:
            raise UnsupportedModelError(
                f"no moment transform for item type {item.item_type}"
            )
        probs = item.probability_trace(points)
        expected[:, j] = probs @ np.arange(item.n_categories)
        expected_square[:, j] = transform(probs)

    return ItemMoments(expected=expected, expected_square=expected_square)


@dataclass(frozen=True)
class ExpectedMoments:
    """
    Model-implied moments.

    Attributes:
        e1: Expected item scores, shape (n_items,).
        e11: Expected squared item scores, shape (n_items,).
        e2: Expected cross-products, shape (n_items, n_items); symmetric
            with e11 on the diagonal.
    """

    e1: NDArray[np.float64]
    e11: NDArray[np.float64]
    e2: NDArray[np.float64]

    @property
    def vector(self) -> NDArray[np.float64]:
        """Moment vector e."""
        first, second = pair_indices(len(self.e1))
        return np.concatenate([self.e1, self.e2[first, second]])

    @property
    def covariance(self) -> NDArray[np.float64]:
        result: NDArray[np.float64] = self.e2 - np.outer(self.e1, self.e1)
        return result


def expected_moments(
    item_moments: ItemMoments, weights: NDArray[np.float64]
) -> ExpectedMoments:
    """Integrate conditional moments against the prior weights."""
    expected = item_moments.expected
    e1 = weights @ expected
    e11 = weights @ item_moments.expected_square
    e2 = expected.T @ (expected * weights[:, np.newaxis])
    e2 = 0.5 * (e2 + e2.T)
    np.fill_diagonal(e2, e11)
    return ExpectedMoments(e1=e1, e11=e11, e2=e2)


@dataclass(frozen=True)
class ObservedMoments:
    """
    Sample moments of complete, 0-indexed responses.

    Attributes:
        means: Item means, shape (n_items,).
        cross: X'X / N, shape (n_items, n_items).
        n_respondents: Sample size N.
    """

    means: NDArray[np.float64]
    cross: NDArray[np.float64]
    n_respondents: int

    @property
    def vector(self) -> NDArray[np.float64]:
        """Moment vector p."""
        first, second = pair_indices(len(self.means))
        return np.concatenate([self.means, self.cross[first, second]])

    @property
    def covariance(self) -> NDArray[np.float64]:
        result: NDArray[np.float64] = self.cross - np.outer(
            self.means, self.means
        )
        return result


def observed_moments(centered: NDArray[np.int64]) -> ObservedMoments:
    """
    Sample moments of 0-indexed responses.

    Raises:
        MissingInputError: If any response is missing.
    """
    if np.any(centered == MISSING_VALUE):
        raise MissingInputError(
            "M2 cannot be calculated for data with missing values"
        )
    data = centered.astype(np.float64)
    n = data.shape[0]
    return ObservedMoments(
        means=data.mean(axis=0),
        cross=(data.T @ data) / n,
        n_respondents=n,
    )
