"""
Tests for latent trait quadrature.
"""

import numpy as np
import pytest
from scipy.stats import norm, qmc

from irtfit.fit.config import QMC_LEAP, QMC_NODE_SPREAD, QuadratureConfig
from irtfit.fit.exceptions import ConfigurationError
from irtfit.fit.quadrature import (
    build_quadrature,
    quasi_random_grid,
    rectangular_grid,
    select_quadrature_points,
)
from irtfit.irt.model import DiscreteLatentGrid, LatentDistribution


class TestSelectQuadraturePoints:
    @pytest.mark.parametrize(
        "n_factors,expected", [(1, 61), (2, 31), (3, 15), (4, 9), (5, 7), (6, 3)]
    )
    def test_defaults_shrink_with_dimension(
        self, n_factors: int, expected: int
    ) -> None:
        assert select_quadrature_points(n_factors) == expected


class TestGrids:
    def test_rectangular_range(self) -> None:
        """Nodes span +/- 0.8 sqrt(q)."""
        grid = rectangular_grid(25, 1)
        assert grid.shape == (25, 1)
        np.testing.assert_allclose(grid[[0, -1], 0], [-4.0, 4.0])

    def test_rectangular_product(self) -> None:
        grid = rectangular_grid(5, 2)
        assert grid.shape == (25, 2)
        assert len({tuple(row) for row in grid}) == 25

    def test_quasi_random_nodes_finite(self) -> None:
        grid = quasi_random_grid(500, 3)
        assert grid.shape == (500, 3)
        assert np.all(np.isfinite(grid))
        # Deterministic (unscrambled) sequence
        np.testing.assert_array_equal(grid, quasi_random_grid(500, 3))

    def test_quasi_random_nodes_are_leaped(self) -> None:
        """Nodes are Halton points 1, 410, 819, ..."""
        grid = quasi_random_grid(3, 4)

        plain = qmc.Halton(d=4, scramble=False).random(820)
        expected = norm.ppf(plain[[1, 410, 819]], scale=QMC_NODE_SPREAD)
        np.testing.assert_allclose(grid, expected)
        assert QMC_LEAP == 409

    def test_leap_of_one_is_plain_sequence(self) -> None:
        grid = quasi_random_grid(10, 2, leap=1)
        plain = qmc.Halton(d=2, scramble=False).random(11)[1:]
        np.testing.assert_allclose(
            grid, norm.ppf(plain, scale=QMC_NODE_SPREAD)
        )


class TestBuildQuadrature:
    def test_standard_normal_moments(self) -> None:
        """The default 61-node grid reproduces N(0, 1) moments."""
        quad = build_quadrature(1)

        assert quad.n_points == 61
        assert quad.n_factors == 1
        np.testing.assert_allclose(quad.weights.sum(), 1.0, rtol=1e-12)
        mean = quad.weights @ quad.points[:, 0]
        variance = quad.weights @ quad.points[:, 0] ** 2 - mean**2
        np.testing.assert_allclose(mean, 0.0, atol=1e-10)
        np.testing.assert_allclose(variance, 1.0, rtol=1e-4)

    def test_group_distribution(self) -> None:
        dist = LatentDistribution(mean=(0.5,), covariance=((0.64,),))
        quad = build_quadrature(1, QuadratureConfig(n_points=81), dist)

        mean = quad.weights @ quad.points[:, 0]
        variance = quad.weights @ quad.points[:, 0] ** 2 - mean**2
        np.testing.assert_allclose(mean, 0.5, rtol=1e-4)
        np.testing.assert_allclose(variance, 0.64, rtol=1e-3)

    def test_correlated_two_factor_prior(self) -> None:
        dist = LatentDistribution(
            mean=(0.0, 0.0), covariance=((1.0, 0.5), (0.5, 1.0))
        )
        quad = build_quadrature(2, distribution=dist)

        assert quad.points.shape == (31**2, 2)
        covariance = (quad.points * quad.weights[:, None]).T @ quad.points
        np.testing.assert_allclose(
            covariance, [[1.0, 0.5], [0.5, 1.0]], atol=1e-3
        )

    def test_qmc_default_size(self) -> None:
        quad = build_quadrature(2, QuadratureConfig(use_qmc=True))
        assert quad.n_points == 2000
        np.testing.assert_allclose(quad.weights.sum(), 1.0)

    def test_discrete_grid_passes_through(self) -> None:
        grid = DiscreteLatentGrid(
            points=np.array([-1.0, 0.0, 1.0]),
            weights=np.array([0.25, 0.5, 0.25]),
        )
        quad = build_quadrature(1, latent_grid=grid)

        np.testing.assert_array_equal(quad.points, grid.points)
        np.testing.assert_array_equal(quad.weights, grid.weights)

    def test_discrete_grid_validated(self) -> None:
        unnormalized = DiscreteLatentGrid(
            points=np.array([-1.0, 1.0]), weights=np.array([1.0, 1.0])
        )
        with pytest.raises(ConfigurationError, match="sum to 1"):
            build_quadrature(1, latent_grid=unnormalized)

        negative = DiscreteLatentGrid(
            points=np.array([-1.0, 1.0]), weights=np.array([1.5, -0.5])
        )
        with pytest.raises(ConfigurationError, match=">= 0"):
            build_quadrature(1, latent_grid=negative)

        mismatched = DiscreteLatentGrid(
            points=np.array([-1.0, 0.0, 1.0]), weights=np.array([0.5, 0.5])
        )
        with pytest.raises(ConfigurationError, match="weights"):
            build_quadrature(1, latent_grid=mismatched)

    def test_discrete_grid_dimension(self) -> None:
        grid = DiscreteLatentGrid(
            points=np.array([-1.0, 1.0]), weights=np.array([0.5, 0.5])
        )
        with pytest.raises(ConfigurationError, match="factors"):
            build_quadrature(2, latent_grid=grid)

    def test_requires_a_factor(self) -> None:
        with pytest.raises(ConfigurationError, match="n_factors"):
            build_quadrature(0)
