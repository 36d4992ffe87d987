"""
Limited-information goodness-of-fit statistics.

This module provides:
- compute_m2: M2/M2* with RMSEA, SRMSR, TLI and CFI
- impute_missing: completion of missing responses from a fitted model
- Configuration, result containers and the M2Error hierarchy
"""

from irtfit.fit.config import M2Config, QuadratureConfig
from irtfit.fit.data_models import (
    FitResult,
    GroupFitResult,
    PooledFitResult,
    ResidualMatrix,
)
from irtfit.fit.exceptions import (
    ConfigurationError,
    DimensionError,
    IllConditionedError,
    InsufficientDegreesOfFreedomError,
    M2Error,
    MissingInputError,
    NullModelConvergenceError,
    UnsupportedModelError,
)
from irtfit.fit.imputation import impute_missing
from irtfit.fit.m2 import compute_m2

__all__ = [
    "ConfigurationError",
    "DimensionError",
    "FitResult",
    "GroupFitResult",
    "IllConditionedError",
    "InsufficientDegreesOfFreedomError",
    "M2Config",
    "M2Error",
    "MissingInputError",
    "NullModelConvergenceError",
    "PooledFitResult",
    "QuadratureConfig",
    "ResidualMatrix",
    "UnsupportedModelError",
    "compute_m2",
    "impute_missing",
]
