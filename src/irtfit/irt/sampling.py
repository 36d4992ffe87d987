"""
Response sampling for IRT models.

This module provides functions to sample category responses given latent
trait values and item parameters. Works with any item type in
``irtfit.irt.items``.
"""

from collections.abc import Sequence

import numpy as np
from numpy.random import Generator
from numpy.typing import NDArray

from irtfit.core.utils import get_rng
from irtfit.irt.items import ItemParameters, as_theta_matrix


def sample_categories(
    probs: NDArray[np.float64], rng: Generator
) -> NDArray[np.int64]:
    """
    Draw one category per row of a probability table.

    Args:
        probs: Array of shape (n, n_categories); rows sum to 1.
        rng: Random number generator.

    Returns:
        Array of shape (n,) with 0-indexed categories.
    """
    n, n_choices = probs.shape
    # Vectorized sampling using cumulative probabilities
    cumprobs = np.cumsum(probs, axis=1)
    u = rng.random(n)
    sampled = np.minimum((cumprobs < u[:, np.newaxis]).sum(axis=1), n_choices - 1)
    return sampled.astype(np.int64)


def sample_responses(
    items: Sequence[ItemParameters],
    theta: NDArray[np.float64],
    rng: Generator | None = None,
) -> NDArray[np.int64]:
    """
    Sample responses for all respondents and items.

    Args:
        items: Item parameters, one per column.
        theta: Latent trait values, shape (n_respondents, n_factors), or
            (n_respondents,) for single-factor items.
        rng: Random number generator.

    Returns:
        Array of shape (n_respondents, n_items) with 0-indexed categories.
    """
    if rng is None:
        rng = get_rng()

    theta = as_theta_matrix(theta, items[0].n_factors)
    responses = np.empty((theta.shape[0], len(items)), dtype=np.int64)
    for j, item in enumerate(items):
        responses[:, j] = sample_categories(item.probability_trace(theta), rng)
    return responses
