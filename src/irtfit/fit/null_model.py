"""
Incremental fit indices relative to a null model.

    TLI = (M2_0/df_0 - M2/df) / (M2_0/df_0 - 1)
    CFI = 1 - (M2 - df) / (M2_0 - df_0)

Both indices are clamped to [0, 1]; an index whose denominator vanishes is
reported as absent.
"""

import numpy as np

from irtfit.fit.data_models import FitResult


def _clamp(value: float) -> float | None:
    if not np.isfinite(value):
        return None
    return float(np.clip(value, 0.0, 1.0))


def tli_cfi(
    statistic: float, df: int, null_statistic: float, null_df: int
) -> tuple[float | None, float | None]:
    """
    Compute TLI and CFI.

    Args:
        statistic: M2 of the fitted model.
        df: Degrees of freedom of the fitted model.
        null_statistic: M2 of the null model.
        null_df: Degrees of freedom of the null model.

    Returns:
        Tuple of (tli, cfi), each in [0, 1] or None.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        null_ratio = np.float64(null_statistic) / null_df
        tli = (null_ratio - np.float64(statistic) / df) / (null_ratio - 1.0)
        cfi = 1.0 - (np.float64(statistic) - df) / (
            np.float64(null_statistic) - null_df
        )
    return _clamp(float(tli)), _clamp(float(cfi))


def with_null_comparison(
    result: FitResult, null_statistic: float, null_df: int
) -> FitResult:
    """Copy of ``result`` with TLI and CFI filled in."""
    tli, cfi = tli_cfi(result.statistic, result.df, null_statistic, null_df)
    return result.model_copy(update={"tli": tli, "cfi": cfi})
