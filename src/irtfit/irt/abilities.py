"""
Ability estimation for fitted IRT models.

This module provides Expected A Posteriori (EAP) latent trait estimates,
computed per group over that group's quadrature grid and prior. The
estimates are the usual input for imputing missing responses.
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from irtfit.core.constants import MISSING_VALUE
from irtfit.fit.config import QuadratureConfig
from irtfit.fit.quadrature import build_quadrature
from irtfit.irt.items import ItemParameters
from irtfit.irt.model import FittedModel


@dataclass(frozen=True)
class AbilityEstimates:
    """
    Ability estimates for respondents.

    Attributes:
        eap: Posterior means, shape (n_respondents, n_factors).
        se: Posterior standard deviations, shape (n_respondents, n_factors).
    """

    eap: NDArray[np.float64]
    se: NDArray[np.float64]

    @property
    def n_respondents(self) -> int:
        """Number of respondents."""
        return self.eap.shape[0]


def estimate_abilities(
    model: FittedModel, config: QuadratureConfig | None = None
) -> AbilityEstimates:
    """
    Estimate latent traits using Expected A Posteriori (EAP).

    EAP estimates are the posterior mean of θ given the responses and the
    fitted item parameters:
        θ_EAP = E[θ | responses] = Σ_q θ_q P(θ_q | responses)

    Standard errors are the posterior standard deviation per factor:
        SE = sqrt(E[θ² | responses] - E[θ | responses]²)

    Missing responses contribute nothing to the likelihood.

    Args:
        model: Fitted model with responses and item parameters.
        config: Quadrature configuration. Uses defaults if None.

    Returns:
        AbilityEstimates in the original respondent order.
    """
    n_respondents = model.data.n_respondents
    eap = np.zeros((n_respondents, model.n_factors), dtype=np.float64)
    se = np.zeros_like(eap)

    for g, group in enumerate(model.groups):
        rows = model.group_rows(g)
        quadrature = build_quadrature(
            group.n_factors,
            config,
            distribution=group.distribution,
            latent_grid=group.latent_grid,
        )
        theta = quadrature.points
        centered = model.group_data(g).centered()

        # Log prior plus log-likelihood of each item
        log_lik = np.tile(
            np.log(quadrature.weights + 1e-300), (centered.shape[0], 1)
        )
        for item_idx, item in enumerate(group.items):
            log_lik += _item_log_likelihood(centered[:, item_idx], item, theta)

        # Posteriors using log-sum-exp
        log_lik -= np.max(log_lik, axis=1, keepdims=True)
        posteriors = np.exp(log_lik)
        posteriors /= posteriors.sum(axis=1, keepdims=True) + 1e-300

        group_eap = posteriors @ theta
        variance = posteriors @ theta**2 - group_eap**2
        eap[rows] = group_eap
        # Ensure non-negative (numerical precision)
        se[rows] = np.sqrt(np.maximum(variance, 0.0))

    return AbilityEstimates(eap=eap, se=se)


def _item_log_likelihood(
    responses: NDArray[np.int64],
    item: ItemParameters,
    theta: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Log-likelihood contribution of one item at every quadrature node.

    Returns:
        Array of shape (n_respondents, n_points); zero for missing rows.
    """
    log_probs = np.log(item.probability_trace(theta) + 1e-300)
    log_lik = np.zeros((len(responses), theta.shape[0]), dtype=np.float64)
    valid_mask = responses != MISSING_VALUE
    log_lik[valid_mask, :] = log_probs[:, responses[valid_mask]].T
    return log_lik
