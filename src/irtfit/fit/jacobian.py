"""
Jacobian of the model-implied moments w.r.t. free item parameters.

Parameters are numbered globally by concatenating the items' parameter
vectors in item order. For item i with parameters ψ_i:
    ∂E1_i / ∂ψ_i   = Σ_q w_q ∂E[X_i | θ_q]/∂ψ_i
    ∂E2_ij / ∂ψ_i  = Σ_q w_q ∂E[X_i | θ_q]/∂ψ_i E[X_j | θ_q]
and symmetrically for ψ_j. Columns of fixed parameters are dropped.
"""

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray

from irtfit.fit.exceptions import DimensionError
from irtfit.fit.moments import ItemMoments, count_moments, pair_indices
from irtfit.irt.items import ItemParameters

logger = logging.getLogger(__name__)


def build_jacobian(
    items: Sequence[ItemParameters],
    points: NDArray[np.float64],
    weights: NDArray[np.float64],
    item_moments: ItemMoments,
    expected_columns: int | None = None,
) -> NDArray[np.float64]:
    """
    Assemble the moment Jacobian (delta).

    Args:
        items: Items in column order.
        points: Quadrature nodes, shape (n_points, n_factors).
        weights: Prior weights, shape (n_points,).
        item_moments: Conditional moments at the same nodes.
        expected_columns: Number of free parameters the caller expects;
            checked against the assembled matrix when given.

    Returns:
        Array of shape (n_moments, n_free_parameters).

    Raises:
        DimensionError: If the shape disagrees with the moment count or the
            expected number of free parameters.
    """
    n_items = len(items)
    expected = item_moments.expected
    first, second = pair_indices(n_items)

    derivatives = [item.derivative(points) for item in items]
    offsets = np.concatenate(
        [[0], np.cumsum([d.shape[1] for d in derivatives])]
    )
    delta = np.zeros((count_moments(n_items), offsets[-1]), dtype=np.float64)

    for i, derivative in enumerate(derivatives):
        columns = slice(offsets[i], offsets[i + 1])
        weighted = derivative * weights[:, np.newaxis]
        delta[i, columns] = weighted.sum(axis=0)

        # Pairs where item i is the first member, then the second
        rows = np.flatnonzero(first == i)
        delta[n_items + rows, columns] = (
            weighted.T @ expected[:, second[rows]]
        ).T
        rows = np.flatnonzero(second == i)
        delta[n_items + rows, columns] = (
            weighted.T @ expected[:, first[rows]]
        ).T

    free = np.concatenate([item.free_mask for item in items])
    delta = delta[:, free]

    if delta.shape[0] != count_moments(n_items):
        raise DimensionError(
            f"Jacobian has {delta.shape[0]} rows, expected "
            f"{count_moments(n_items)}"
        )
    if expected_columns is not None and delta.shape[1] != expected_columns:
        raise DimensionError(
            f"Jacobian has {delta.shape[1]} free parameter columns, "
            f"expected {expected_columns}"
        )
    logger.debug(f"Jacobian assembled with shape {delta.shape}")
    return delta
