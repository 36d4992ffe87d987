"""
Configuration for the limited-information fit statistics.

This module defines the configuration parameters for:
- Quadrature over the latent trait space
- The M2 computation (null model, imputation, RMSEA interval, residuals)
"""

from dataclasses import dataclass

from irtfit.fit.exceptions import ConfigurationError

# Default quadrature settings
# Nodes per dimension for rectangular grids, indexed by number of factors
DEFAULT_QUADRATURE_POINTS_BY_FACTORS = {1: 61, 2: 31, 3: 15, 4: 9, 5: 7}
DEFAULT_QUADRATURE_POINTS_HIGH_DIMENSION = 3
# Total nodes for quasi-Monte Carlo integration
DEFAULT_QMC_POINTS = 2000
# Only every QMC_LEAP-th Halton point is used
QMC_LEAP = 409
# Standard deviation of the normal used to spread quasi-random nodes
QMC_NODE_SPREAD = 2.0
# Rectangular grid spans +/- this multiple of sqrt(n_points)
RECTANGULAR_GRID_SCALE = 0.8

# Default M2 settings
DEFAULT_CI_LEVEL = 0.9
DEFAULT_SUPPRESS = 1.0


@dataclass(frozen=True)
class QuadratureConfig:
    """
    Configuration for latent trait integration.

    Attributes:
        n_points: Nodes per dimension for rectangular grids, or total nodes
            for quasi-Monte Carlo. None selects a default from the number of
            factors.
        use_qmc: Use a quasi-random (Halton) node set instead of a
            rectangular grid. Useful for higher dimensional models.
    """

    n_points: int | None = None
    use_qmc: bool = False

    def __post_init__(self) -> None:
        if self.n_points is not None and self.n_points < 1:
            raise ConfigurationError(
                f"n_points must be >= 1, got {self.n_points}"
            )


@dataclass(frozen=True)
class M2Config:
    """
    Options for computing M2 and its fit indices.

    Attributes:
        calc_null: Fit the independence (null) model to obtain TLI and CFI.
        quadrature_points: Quadrature node count (see QuadratureConfig).
        use_qmc: Use quasi-Monte Carlo integration.
        imputations: Number of imputed datasets when data are missing.
        ci_level: Coverage of the two-sided RMSEA confidence interval.
        residual_matrix: Return the residual correlation matrix instead of
            the summary statistics.
        suppress: Residuals with absolute value below this threshold are
            set to NaN. Only valid together with residual_matrix.
        best_effort_null: When the null model fails, omit TLI/CFI and
            report the failure in the result instead of raising.
    """

    calc_null: bool = True
    quadrature_points: int | None = None
    use_qmc: bool = False
    imputations: int = 0
    ci_level: float = DEFAULT_CI_LEVEL
    residual_matrix: bool = False
    suppress: float = DEFAULT_SUPPRESS
    best_effort_null: bool = False

    def __post_init__(self) -> None:
        if not (0.0 < self.ci_level < 1.0):
            raise ConfigurationError(
                f"ci_level must be in (0, 1), got {self.ci_level}"
            )
        if self.imputations < 0:
            raise ConfigurationError(
                f"imputations must be nonnegative, got {self.imputations}"
            )
        if not (0.0 <= self.suppress <= 1.0):
            raise ConfigurationError(
                f"suppress must be in [0, 1], got {self.suppress}"
            )
        if self.suppress < 1.0 and not self.residual_matrix:
            raise ConfigurationError(
                "suppress must be used together with residual_matrix=True"
            )
        if self.residual_matrix and self.imputations > 0:
            raise ConfigurationError(
                "residual_matrix cannot be pooled over imputations"
            )
        if self.quadrature_points is not None and self.quadrature_points < 1:
            raise ConfigurationError(
                f"quadrature_points must be >= 1, "
                f"got {self.quadrature_points}"
            )

    @property
    def quadrature(self) -> QuadratureConfig:
        return QuadratureConfig(
            n_points=self.quadrature_points, use_qmc=self.use_qmc
        )

    @property
    def alpha(self) -> float:
        """Tail probability on each side of the RMSEA interval."""
        return (1.0 - self.ci_level) / 2.0
