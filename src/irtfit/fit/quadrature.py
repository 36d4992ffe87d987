"""
Quadrature over the latent trait space.

Builds integration nodes and normalized prior weights for computing
model-implied moments:
- rectangular grids: equally spaced nodes per dimension, full product
- quasi-Monte Carlo: leaped Halton nodes mapped through a wide normal quantile
- discrete grids supplied by the model, passed through unchanged
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.stats import multivariate_normal, norm, qmc

from irtfit.fit.config import (
    DEFAULT_QMC_POINTS,
    DEFAULT_QUADRATURE_POINTS_BY_FACTORS,
    DEFAULT_QUADRATURE_POINTS_HIGH_DIMENSION,
    QMC_LEAP,
    QMC_NODE_SPREAD,
    RECTANGULAR_GRID_SCALE,
    QuadratureConfig,
)
from irtfit.fit.exceptions import ConfigurationError
from irtfit.irt.model import DiscreteLatentGrid, LatentDistribution

# Tolerance for prior weights summing to one
WEIGHT_SUM_TOLERANCE = 1e-8


@dataclass(frozen=True)
class LatentQuadrature:
    """
    Integration nodes and prior weights.

    Attributes:
        points: Nodes, shape (n_points, n_factors).
        weights: Prior probabilities, shape (n_points,). Weights sum to 1.
    """

    points: NDArray[np.float64]
    weights: NDArray[np.float64]

    @property
    def n_points(self) -> int:
        """Number of quadrature nodes."""
        return len(self.weights)

    @property
    def n_factors(self) -> int:
        return self.points.shape[1]


def select_quadrature_points(n_factors: int) -> int:
    """Default nodes per dimension; fewer nodes as dimension grows."""
    return DEFAULT_QUADRATURE_POINTS_BY_FACTORS.get(
        n_factors, DEFAULT_QUADRATURE_POINTS_HIGH_DIMENSION
    )


def rectangular_grid(n_points: int, n_factors: int) -> NDArray[np.float64]:
    """
    Full product of equally spaced nodes.

    Nodes span +/- 0.8 * sqrt(n_points) in every dimension, giving
    n_points ** n_factors grid points.
    """
    half_width = RECTANGULAR_GRID_SCALE * np.sqrt(n_points)
    nodes = np.linspace(-half_width, half_width, n_points)
    mesh = np.meshgrid(*([nodes] * n_factors), indexing="ij")
    return np.column_stack([m.ravel() for m in mesh])


def quasi_random_grid(
    n_points: int, n_factors: int, leap: int = QMC_LEAP
) -> NDArray[np.float64]:
    """
    Quasi-random nodes from a leaped, unscrambled Halton sequence.

    Uses the points with indices 1, 1 + leap, 1 + 2 leap, ...; the origin
    is skipped so that every node maps to a finite normal quantile.
    """
    sampler = qmc.Halton(d=n_factors, scramble=False)
    sampler.fast_forward(1)
    uniforms = np.empty((n_points, n_factors), dtype=np.float64)
    for i in range(n_points):
        uniforms[i] = sampler.random(1)[0]
        sampler.fast_forward(leap - 1)
    result: NDArray[np.float64] = norm.ppf(uniforms, scale=QMC_NODE_SPREAD)
    return result


def _validate_discrete_grid(grid: DiscreteLatentGrid) -> LatentQuadrature:
    points, weights = grid.points, grid.weights
    if weights.ndim != 1 or len(weights) != points.shape[0]:
        raise ConfigurationError(
            f"latent grid has {points.shape[0]} points but "
            f"{weights.size} weights"
        )
    if len(weights) < 1:
        raise ConfigurationError("latent grid needs at least one point")
    if not np.all(np.isfinite(weights)) or np.any(weights < 0):
        raise ConfigurationError("latent grid weights must be finite and >= 0")
    if abs(weights.sum() - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ConfigurationError(
            f"latent grid weights must sum to 1, got {weights.sum()}"
        )
    return LatentQuadrature(points=points, weights=weights)


def build_quadrature(
    n_factors: int,
    config: QuadratureConfig | None = None,
    distribution: LatentDistribution | None = None,
    latent_grid: DiscreteLatentGrid | None = None,
) -> LatentQuadrature:
    """
    Build integration nodes and normalized prior weights.

    Args:
        n_factors: Number of latent factors.
        config: Node count and grid type. Uses defaults if None.
        distribution: Normal prior mean and covariance. Standard normal
            if None.
        latent_grid: Discrete grid that replaces the normal prior; returned
            unchanged after validation.

    Returns:
        LatentQuadrature with weights summing to 1.

    Raises:
        ConfigurationError: If n_factors <= 0 or the grid/prior is invalid.
    """
    if n_factors <= 0:
        raise ConfigurationError(f"n_factors must be >= 1, got {n_factors}")

    if latent_grid is not None:
        quadrature = _validate_discrete_grid(latent_grid)
        if quadrature.n_factors != n_factors:
            raise ConfigurationError(
                f"latent grid has {quadrature.n_factors} factors, "
                f"expected {n_factors}"
            )
        return quadrature

    if config is None:
        config = QuadratureConfig()
    if distribution is None:
        distribution = LatentDistribution.standard(n_factors)

    if config.use_qmc:
        n_points = config.n_points or DEFAULT_QMC_POINTS
        points = quasi_random_grid(n_points, n_factors)
    else:
        n_points = config.n_points or select_quadrature_points(n_factors)
        points = rectangular_grid(n_points, n_factors)

    density = np.atleast_1d(
        multivariate_normal(
            mean=np.array(distribution.mean),
            cov=np.array(distribution.covariance),
            allow_singular=True,
        ).pdf(points)
    )
    total = density.sum()
    if not np.isfinite(total) or total <= 0:
        raise ConfigurationError("prior density vanishes on the grid")

    return LatentQuadrature(
        points=points.astype(np.float64),
        weights=(density / total).astype(np.float64),
    )
