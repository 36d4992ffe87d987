"""
Quadratic form of the M2 statistic and the indices derived from it.

Given the moment residual r = p - e, the Jacobian delta and Xi2, the
statistic is

    M2 = N r' C r,   C = Δc (Δc' Xi2 Δc)^{-1} Δc'

where the columns of Δc span the orthogonal complement of delta's column
space. The same module turns (M2, df, N) into a p-value, RMSEA and its
confidence interval, and compares observed and implied correlations for
SRMSR and the residual matrix.
"""

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import brentq
from scipy.stats import chi2, ncx2

from irtfit.fit.exceptions import (
    IllConditionedError,
    InsufficientDegreesOfFreedomError,
    UnsupportedModelError,
)
from irtfit.fit.moments import ExpectedMoments, ObservedMoments
from irtfit.irt.enums import ItemType
from irtfit.irt.items import ItemParameters

logger = logging.getLogger(__name__)

# Largest condition number accepted for the projected weight matrix
MAX_CONDITION_NUMBER = 1e12

SRMSR_ITEM_TYPES = frozenset({ItemType.DICH, ItemType.GRADED, ItemType.GPCM})


def orthogonal_complement(delta: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Orthonormal basis of the complement of delta's column space.

    Args:
        delta: Jacobian of shape (n_moments, n_free).

    Returns:
        Array of shape (n_moments, n_moments - n_free).

    Raises:
        InsufficientDegreesOfFreedomError: If n_moments <= n_free.
    """
    n_moments, n_free = delta.shape
    if n_moments - n_free <= 0:
        raise InsufficientDegreesOfFreedomError(n_moments, n_free)
    q, _ = np.linalg.qr(delta, mode="complete")
    result: NDArray[np.float64] = q[:, n_free:]
    return result


def m2_quadratic_form(
    residual: NDArray[np.float64],
    deltac: NDArray[np.float64],
    xi2: NDArray[np.float64],
    n_respondents: int,
) -> float:
    """
    Evaluate N r' Δc (Δc' Xi2 Δc)^{-1} Δc' r.

    Raises:
        IllConditionedError: If the projected weight matrix is singular or
            its condition number exceeds MAX_CONDITION_NUMBER.
    """
    middle = deltac.T @ xi2 @ deltac
    middle = 0.5 * (middle + middle.T)
    condition = np.linalg.cond(middle)
    if not np.isfinite(condition) or condition > MAX_CONDITION_NUMBER:
        raise IllConditionedError(
            f"projected weight matrix is ill-conditioned "
            f"(condition number {condition:.3g})"
        )
    projected = deltac.T @ residual
    try:
        solved = np.linalg.solve(middle, projected)
    except np.linalg.LinAlgError as e:
        raise IllConditionedError(
            "projected weight matrix is singular"
        ) from e

    statistic = float(n_respondents * projected @ solved)
    return max(statistic, 0.0)


def p_value(statistic: float, df: int) -> float:
    """Upper tail probability of chi-square(df)."""
    return float(chi2.sf(statistic, df))


def rmsea(statistic: float, df: int, n_respondents: int) -> float:
    """RMSEA = sqrt(max(0, (M2 - df) / (df (N - 1))))."""
    if df <= 0 or n_respondents <= 1:
        return 0.0
    value = (statistic - df) / (df * (n_respondents - 1))
    return float(np.sqrt(max(value, 0.0)))


def _chi2_cdf(statistic: float, df: int, noncentrality: float) -> float:
    if noncentrality <= 0.0:
        return float(chi2.cdf(statistic, df))
    return float(ncx2.cdf(statistic, df, noncentrality))


def _noncentrality_root(
    statistic: float, df: int, target: float, upper: float
) -> float | None:
    """Noncentrality λ in [0, upper] with CDF(statistic; df, λ) = target."""

    def objective(noncentrality: float) -> float:
        return _chi2_cdf(statistic, df, noncentrality) - target

    lo, hi = objective(0.0), objective(upper)
    if not (np.isfinite(lo) and np.isfinite(hi)) or lo * hi > 0 or upper <= 0:
        return None
    return float(brentq(objective, 0.0, upper))


def rmsea_confidence_interval(
    statistic: float, df: int, n_respondents: int, ci_level: float
) -> tuple[float, float]:
    """
    Two-sided RMSEA interval from the noncentral chi-square distribution.

    The lower bound inverts CDF = 1 - α over [0, M2] and the upper bound
    inverts CDF = α over [0, max(N, 5 M2)], with α = (1 - ci_level) / 2.
    A bound whose bracket has no sign change is 0.

    Returns:
        Tuple of (lower, upper).
    """
    if df <= 0 or n_respondents <= 0:
        return 0.0, 0.0
    alpha = (1.0 - ci_level) / 2.0
    scale = n_respondents * df

    lower_root = _noncentrality_root(statistic, df, 1.0 - alpha, statistic)
    upper_root = _noncentrality_root(
        statistic, df, alpha, max(float(n_respondents), 5.0 * statistic)
    )
    lower = np.sqrt(lower_root / scale) if lower_root is not None else 0.0
    upper = np.sqrt(upper_root / scale) if upper_root is not None else 0.0
    return float(lower), float(upper)


def srmsr_eligible(items: Sequence[ItemParameters]) -> bool:
    """Whether every item is dichotomous, graded or partial credit."""
    return all(item.item_type in SRMSR_ITEM_TYPES for item in items)


def _covariance_to_correlation(
    covariance: NDArray[np.float64],
) -> NDArray[np.float64]:
    sd = np.sqrt(np.diag(covariance))
    with np.errstate(divide="ignore", invalid="ignore"):
        result: NDArray[np.float64] = covariance / np.outer(sd, sd)
    return result


def correlation_residuals(
    observed: ObservedMoments, expected: ExpectedMoments
) -> NDArray[np.float64]:
    """
    Observed minus implied correlations.

    Returns:
        Array of shape (n_items, n_items); the strict lower triangle holds
        the residuals and every other entry is NaN.
    """
    residual = _covariance_to_correlation(
        observed.covariance
    ) - _covariance_to_correlation(expected.covariance)
    n_items = residual.shape[0]
    upper = np.triu_indices(n_items)
    residual[upper] = np.nan
    return residual


def srmsr(residuals: NDArray[np.float64]) -> float:
    """Root mean square of the lower-triangular correlation residuals."""
    lower = residuals[np.tril_indices(residuals.shape[0], k=-1)]
    if lower.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(lower**2)))


def suppress_residuals(
    residuals: NDArray[np.float64], suppress: float
) -> NDArray[np.float64]:
    """
    Null residuals whose absolute value is below ``suppress``.

    A threshold of 1 leaves the matrix unchanged.
    """
    result = residuals.copy()
    if suppress < 1.0:
        with np.errstate(invalid="ignore"):
            result[np.abs(result) < suppress] = np.nan
    return result


def require_srmsr_eligible(items: Sequence[ItemParameters]) -> None:
    """
    Raises:
        UnsupportedModelError: If residual correlations are undefined for
            the item set.
    """
    if not srmsr_eligible(items):
        types = sorted({item.item_type.value for item in items})
        raise UnsupportedModelError(
            f"residual matrix is only available for dich, graded and gpcm "
            f"items, got {types}"
        )
