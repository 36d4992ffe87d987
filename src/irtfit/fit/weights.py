"""
Asymptotic covariance (Xi2) of the univariate and bivariate moments.

With s = (X_1, ..., X_J, X_i X_j for i > j), Xi2 = E[s s'] - e e'. Under
local independence every expectation of a product of item scores is an
integral of a product of conditional moments, where an item that appears
twice contributes E[X^2 | θ] instead of E[X | θ]^2:

    Xi11[i, i]           = E[X_i^2]                     - E1_i^2
    Xi12[i, (i, j)]      = Σ_q w_q E[X_i^2|θ] E[X_j|θ]   - E1_i E2_ij
    Xi22[(i, j), (i, k)] = Σ_q w_q E[X_i^2|θ] E[X_j|θ] E[X_k|θ] - E2_ij E2_ik

The blocks are laid out as [[Xi11, Xi12], [Xi12', Xi22]].
"""

import numpy as np
from numpy.typing import NDArray

from irtfit.fit.moments import ItemMoments, pair_indices


def build_xi2(
    item_moments: ItemMoments, weights: NDArray[np.float64]
) -> NDArray[np.float64]:
    """
    Build the Xi2 weight matrix.

    Args:
        item_moments: Conditional moments at each quadrature node.
        weights: Prior weights, shape (n_points,).

    Returns:
        Symmetric positive semidefinite array of shape
        (n_moments, n_moments).
    """
    ei = item_moments.expected
    ei2 = item_moments.expected_square
    n_items = item_moments.n_items
    first, second = pair_indices(n_items)
    pairs = np.arange(len(first))
    w = weights[:, np.newaxis]

    # Conditional pair products E[X_i X_j | θ], shape (n_points, n_pairs)
    products = ei[:, first] * ei[:, second]

    xi11 = ei.T @ (ei * w)
    np.fill_diagonal(xi11, weights @ ei2)

    xi12 = ei.T @ (products * w)
    xi12[first, pairs] = weights @ (ei2[:, first] * ei[:, second])
    xi12[second, pairs] = weights @ (ei[:, first] * ei2[:, second])

    xi22 = products.T @ (products * w)
    for m in range(n_items):
        # Pairs containing item m and the other member of each pair
        members = np.flatnonzero((first == m) | (second == m))
        partners = np.where(first[members] == m, second[members], first[members])
        partner_moments = ei[:, partners]
        xi22[np.ix_(members, members)] = partner_moments.T @ (
            partner_moments * (weights * ei2[:, m])[:, np.newaxis]
        )
    xi22[pairs, pairs] = weights @ (ei2[:, first] * ei2[:, second])

    second_moments = np.block([[xi11, xi12], [xi12.T, xi22]])
    e = np.concatenate([weights @ ei, weights @ products])
    xi2 = second_moments - np.outer(e, e)
    result: NDArray[np.float64] = 0.5 * (xi2 + xi2.T)
    return result
