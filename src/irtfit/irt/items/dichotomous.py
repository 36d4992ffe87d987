"""
Two-category item response functions.

- DichotomousItem: multidimensional 4PL
    P(X=1 | θ) = g + (u - g) / (1 + exp(-(a·θ + d)))
- IdealPointItem: unfolding (ideal point) model
    P(X=1 | θ) = exp(-0.5 * (a·θ + d)^2)
- PartiallyCompensatoryItem: noncompensatory product of logistics
    P(X=1 | θ) = g + (1 - g) * Π_m 1 / (1 + exp(-(a_m θ_m + d_m)))

Each trace is returned as [P(X=0), P(X=1)], so derivatives of category 0
are the negated category 1 derivatives.
"""

from typing import ClassVar, Literal, Self

import numpy as np
from numpy.typing import NDArray
from pydantic import model_validator

from irtfit.core.utils import logistic
from irtfit.irt.enums import ItemType
from irtfit.irt.items.base import ItemParameters, as_theta_matrix


def _two_category_trace(p1: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.column_stack([1.0 - p1, p1])


def _two_category_derivatives(
    dp1: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Stack (n_theta, n_parameters) derivatives of P(X=1) for both categories."""
    return np.stack([-dp1, dp1], axis=2)


class DichotomousItem(ItemParameters):
    """
    Multidimensional four-parameter logistic item.

    Attributes:
        slopes: a, one per factor.
        intercept: d.
        guessing: Lower asymptote g (fixed by default).
        upper: Upper asymptote u (fixed by default).
    """

    item_type: Literal[ItemType.DICH] = ItemType.DICH
    intercept: float
    guessing: float = 0.0
    upper: float = 1.0

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = (
        "slopes",
        "intercept",
        "guessing",
        "upper",
    )

    @model_validator(mode="after")
    def _validate_asymptotes(self) -> Self:
        if not (0.0 <= self.guessing < self.upper <= 1.0):
            raise ValueError(
                f"asymptotes must satisfy 0 <= g < u <= 1, "
                f"got g={self.guessing}, u={self.upper}"
            )
        return self

    @property
    def n_categories(self) -> int:
        return 2

    def _default_estimated(self) -> tuple[bool, ...]:
        return (True,) * (self.n_factors + 1) + (False, False)

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        z = theta @ np.array(self.slopes) + self.intercept
        p1 = self.guessing + (self.upper - self.guessing) * logistic(z)
        return _two_category_trace(p1)

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        s = logistic(theta @ np.array(self.slopes) + self.intercept)
        ds = (self.upper - self.guessing) * s * (1.0 - s)
        dp1 = np.column_stack(
            [theta * ds[:, np.newaxis], ds, 1.0 - s, s]
        )
        return _two_category_derivatives(dp1)


class IdealPointItem(ItemParameters):
    """
    Ideal point (unfolding) item: endorsement peaks where a·θ + d = 0.

    Attributes:
        slopes: a, one per factor.
        intercept: d (should be nonpositive for a proper model).
    """

    item_type: Literal[ItemType.IDEAL] = ItemType.IDEAL
    intercept: float

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = ("slopes", "intercept")

    @property
    def n_categories(self) -> int:
        return 2

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        z = theta @ np.array(self.slopes) + self.intercept
        return _two_category_trace(np.exp(-0.5 * z**2))

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        z = theta @ np.array(self.slopes) + self.intercept
        dz = -np.exp(-0.5 * z**2) * z
        dp1 = np.column_stack([theta * dz[:, np.newaxis], dz])
        return _two_category_derivatives(dp1)


class PartiallyCompensatoryItem(ItemParameters):
    """
    Partially compensatory item: every factor must be high for success.

    Attributes:
        slopes: a_m, one per factor.
        intercepts: d_m, one per factor.
        guessing: Lower asymptote g (fixed by default).
    """

    item_type: Literal[ItemType.PARTCOMP] = ItemType.PARTCOMP
    intercepts: tuple[float, ...]
    guessing: float = 0.0

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = (
        "slopes",
        "intercepts",
        "guessing",
    )

    @model_validator(mode="after")
    def _validate_intercepts(self) -> Self:
        if len(self.intercepts) != len(self.slopes):
            raise ValueError(
                f"partially compensatory items need one intercept per slope, "
                f"got {len(self.intercepts)} and {len(self.slopes)}"
            )
        if not (0.0 <= self.guessing < 1.0):
            raise ValueError(f"guessing must be in [0, 1), got {self.guessing}")
        return self

    @property
    def n_categories(self) -> int:
        return 2

    def _default_estimated(self) -> tuple[bool, ...]:
        return (True,) * (2 * self.n_factors) + (False,)

    def _component_logistics(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return logistic(
            theta * np.array(self.slopes) + np.array(self.intercepts)
        )

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        product = np.prod(self._component_logistics(theta), axis=1)
        return _two_category_trace(
            self.guessing + (1.0 - self.guessing) * product
        )

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        s = self._component_logistics(theta)
        product = np.prod(s, axis=1, keepdims=True)
        d_intercepts = (1.0 - self.guessing) * product * (1.0 - s)
        dp1 = np.column_stack(
            [theta * d_intercepts, d_intercepts, 1.0 - product[:, 0]]
        )
        return _two_category_derivatives(dp1)
