"""
Result containers for the limited-information fit statistics.

This module defines:
- FitResult: M2, degrees of freedom, RMSEA and optional SRMSR/TLI/CFI
- GroupFitResult: per-group contribution in multiple-group models
- PooledFitResult: mean and spread across imputed datasets
- ResidualMatrix: observed-minus-implied correlation residuals
"""

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict


class GroupFitResult(BaseModel):
    """
    Contribution of one group to a multiple-group M2.

    Attributes:
        group: Group name.
        statistic: Group M2 value.
        n_moments: Length of the group's moment vector.
        srmsr: Group SRMSR, or None when the item set is not eligible.
    """

    model_config = ConfigDict(frozen=True)

    group: str
    statistic: float
    n_moments: int
    srmsr: float | None = None


class FitResult(BaseModel):
    """
    M2 statistic and derived fit indices.

    Attributes:
        statistic: M2 (total M2 for multiple-group models).
        df: Degrees of freedom.
        p_value: Upper tail probability of chi-square(df).
        rmsea: RMSEA point estimate.
        rmsea_lower: Lower bound of the RMSEA confidence interval.
        rmsea_upper: Upper bound of the RMSEA confidence interval.
        ci_level: Coverage of the RMSEA confidence interval.
        n_moments: Total length of the moment vector(s).
        srmsr: SRMSR for single-group models with ordinal items only.
        tli: Tucker-Lewis index, clamped to [0, 1].
        cfi: Comparative fit index, clamped to [0, 1].
        null_model_error: Message of a null model failure that was
            tolerated because best-effort mode was requested.
        per_group: Group contributions for multiple-group models.
    """

    model_config = ConfigDict(frozen=True)

    statistic: float
    df: int
    p_value: float
    rmsea: float
    rmsea_lower: float
    rmsea_upper: float
    ci_level: float
    n_moments: int
    srmsr: float | None = None
    tli: float | None = None
    cfi: float | None = None
    null_model_error: str | None = None
    per_group: tuple[GroupFitResult, ...] | None = None

    @property
    def group_srmsr(self) -> dict[str, float] | None:
        """SRMSR per group, reported individually and never pooled."""
        if self.per_group is None:
            return None
        values = {
            g.group: g.srmsr for g in self.per_group if g.srmsr is not None
        }
        return values or None

    def summary(self) -> dict[str, float]:
        """Numeric statistics keyed by name, omitting absent values."""
        values: dict[str, float] = {
            "statistic": self.statistic,
            "df": float(self.df),
            "p_value": self.p_value,
            "rmsea": self.rmsea,
            "rmsea_lower": self.rmsea_lower,
            "rmsea_upper": self.rmsea_upper,
        }
        for name in ("srmsr", "tli", "cfi"):
            value = getattr(self, name)
            if value is not None:
                values[name] = value
        for group in self.per_group or ():
            values[f"{group.group}.statistic"] = group.statistic
            if group.srmsr is not None:
                values[f"{group.group}.srmsr"] = group.srmsr
        return values


class PooledFitResult(BaseModel):
    """
    Fit statistics pooled over imputed datasets.

    Attributes:
        mean: Arithmetic mean of each statistic across imputations.
        sd: Root-mean-square deviation of each statistic from its mean.
        n_imputations: Number of imputed datasets.
        results: The per-imputation results that were pooled.
    """

    model_config = ConfigDict(frozen=True)

    mean: dict[str, float]
    sd: dict[str, float]
    n_imputations: int
    results: tuple[FitResult, ...]


@dataclass(frozen=True)
class ResidualMatrix:
    """
    Residual correlations between observed and model-implied moments.

    Attributes:
        values: Array of shape (n_items, n_items). The strict lower triangle
            holds observed minus implied correlations; every other entry
            (and any suppressed residual) is NaN.
        item_names: Item labels for rows and columns.
    """

    values: NDArray[np.float64]
    item_names: tuple[str, ...]

    @property
    def n_items(self) -> int:
        return self.values.shape[0]
