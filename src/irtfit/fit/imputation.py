"""
Imputation of missing responses and pooling of fit statistics.

Missing responses are drawn from the fitted item response functions at
each respondent's latent trait estimate. Draws are restricted to the
categories observed for the item, so an imputed dataset never contains a
code that the original data did not. Rows whose trace puts no
mass on those categories draw uniformly among them.
"""

import logging
from collections.abc import Sequence

import numpy as np
from numpy.random import Generator
from numpy.typing import NDArray

from irtfit.core.utils import get_rng
from irtfit.fit.data_models import FitResult, PooledFitResult
from irtfit.fit.exceptions import (
    DimensionError,
    MissingInputError,
    UnsupportedModelError,
)
from irtfit.irt.model import FittedModel
from irtfit.irt.sampling import sample_categories

logger = logging.getLogger(__name__)

# Offset beyond the finite range used in place of infinite estimates
INFINITE_ESTIMATE_OFFSET = 0.1


def spawn_generators(
    rng: Generator | int | None, n: int
) -> list[Generator]:
    """Independent child generators, one per imputation."""
    if isinstance(rng, Generator):
        return list(rng.spawn(n))
    return [get_rng(s) for s in np.random.SeedSequence(rng).spawn(n)]


def _prepare_latent_estimates(
    latent_estimates: NDArray[np.float64], model: FittedModel
) -> NDArray[np.float64]:
    theta = np.asarray(latent_estimates, dtype=np.float64)
    if theta.ndim == 1:
        theta = theta.reshape(-1, 1)
    expected_shape = (model.data.n_respondents, model.n_factors)
    if theta.shape != expected_shape:
        raise DimensionError(
            f"latent estimates must have shape {expected_shape}, "
            f"got {theta.shape}"
        )

    theta = theta.copy()
    for k in range(theta.shape[1]):
        column = theta[:, k]
        finite = column[np.isfinite(column)]
        if len(finite) == 0:
            continue
        column[np.isposinf(column)] = finite.max() + INFINITE_ESTIMATE_OFFSET
        column[np.isneginf(column)] = finite.min() - INFINITE_ESTIMATE_OFFSET
    return theta


def _impute_once(
    model: FittedModel, theta: NDArray[np.float64], rng: Generator
) -> NDArray[np.int64]:
    data = model.data
    responses = data.responses.copy()
    missing = data.missing_mask

    for j in np.flatnonzero(missing.any(axis=0)):
        support = data.observed_support(j)
        if len(support) == 0:
            raise MissingInputError(
                f"item {j} has no observed responses to impute from"
            )
        categories = support - data.mins[j]

        for g, group in enumerate(model.groups):
            rows = np.flatnonzero(model.group_rows(g) & missing[:, j])
            if len(rows) == 0:
                continue
            probs = group.items[j].probability_trace(theta[rows])[:, categories]
            mass = probs.sum(axis=1, keepdims=True)
            # Underflow at extreme estimates can leave no mass on the support
            empty = mass[:, 0] <= 0.0
            if np.any(empty):
                logger.warning(
                    f"Item {j}, group {group.name!r}: {int(empty.sum())} "
                    f"rows have no probability on the observed categories; "
                    f"drawing uniformly"
                )
                probs[empty] = 1.0
                mass[empty] = len(categories)
            probs /= mass
            responses[rows, j] = support[sample_categories(probs, rng)]

    return responses


def impute_missing(
    model: FittedModel,
    latent_estimates: NDArray[np.float64] | Sequence[NDArray[np.float64]],
    rng: Generator | None = None,
) -> NDArray[np.int64] | list[NDArray[np.int64]]:
    """
    Impute missing responses from a fitted model.

    Args:
        model: Fitted model whose data contain missing values.
        latent_estimates: Latent trait estimates, shape
            (n_respondents, n_factors), or a sequence of such arrays (e.g.
            plausible values) to produce one dataset each. Infinite
            estimates are moved just outside the finite range.
        rng: Random number generator.

    Returns:
        Completed raw response matrix, or a list of them when a sequence of
        estimates was given.

    Raises:
        DimensionError: If the estimates do not match the model.
        UnsupportedModelError: For mixed-effects models.
    """
    if model.mixed_effects:
        raise UnsupportedModelError(
            "imputation is not supported for mixed-effects models"
        )
    if rng is None:
        rng = get_rng()

    if isinstance(latent_estimates, (list, tuple)):
        return [
            _impute_once(model, _prepare_latent_estimates(t, model), rng)
            for t in latent_estimates
        ]
    theta = _prepare_latent_estimates(latent_estimates, model)
    return _impute_once(model, theta, rng)


def pool_fit_results(results: Sequence[FitResult]) -> PooledFitResult:
    """
    Pool statistics across imputed datasets.

    Each statistic present in every result is summarized by its mean and
    its root-mean-square deviation from that mean.
    """
    if len(results) == 0:
        raise ValueError("need at least one result to pool")
    summaries = [r.summary() for r in results]
    keys = [k for k in summaries[0] if all(k in s for s in summaries)]

    mean: dict[str, float] = {}
    sd: dict[str, float] = {}
    for key in keys:
        values = np.array([s[key] for s in summaries], dtype=np.float64)
        mean[key] = float(values.mean())
        sd[key] = float(np.sqrt(np.mean((values - values.mean()) ** 2)))

    logger.info(
        f"Pooled {len(results)} imputations: "
        f"M2 = {mean['statistic']:.3f} (sd {sd['statistic']:.3f})"
    )
    return PooledFitResult(
        mean=mean, sd=sd, n_imputations=len(results), results=tuple(results)
    )
