"""
Polytomous item response functions.

- GradedItem (Samejima): cumulative logits
    P(X >= k | θ) = 1 / (1 + exp(-(a·θ + d_k))),  P_k = P(X >= k) - P(X >= k+1)
- GeneralizedPartialCreditItem and NominalItem (divide-by-total):
    P(X=k | θ) = exp(ak_k * a·θ + d_k) / Σ_h exp(ak_h * a·θ + d_h)
  The gpcm fixes the scoring slopes ak_k = k; the nominal model estimates
  them apart from the first (0) and last (K-1).
- NestedLogitItem: a 4PL for the correct category, with the remaining
  probability split among distractors by a nominal model in Σθ.
"""

from typing import Any, ClassVar, Literal, Self

import numpy as np
from numpy.typing import NDArray
from pydantic import model_validator

from irtfit.core.utils import logistic, softmax
from irtfit.irt.enums import ItemType
from irtfit.irt.items.base import ItemParameters, as_theta_matrix


class GradedItem(ItemParameters):
    """
    Graded response item.

    Attributes:
        slopes: a, one per factor.
        intercepts: d_1 > d_2 > ... > d_{K-1}, one per category boundary.
    """

    item_type: Literal[ItemType.GRADED] = ItemType.GRADED
    intercepts: tuple[float, ...]

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = ("slopes", "intercepts")

    @model_validator(mode="after")
    def _validate_intercepts_decreasing(self) -> Self:
        if len(self.intercepts) < 1:
            raise ValueError("graded items need at least one intercept")
        if np.any(np.diff(self.intercepts) >= 0):
            raise ValueError(
                f"graded intercepts must be strictly decreasing, "
                f"got {self.intercepts}"
            )
        return self

    @property
    def n_categories(self) -> int:
        return len(self.intercepts) + 1

    def _cumulative(self, theta: NDArray[np.float64]) -> NDArray[np.float64]:
        """P(X >= k) for k = 0..K, shape (n_theta, K + 1)."""
        z = theta @ np.array(self.slopes)
        inner = logistic(z[:, np.newaxis] + np.array(self.intercepts))
        n = theta.shape[0]
        return np.column_stack([np.ones(n), inner, np.zeros(n)])

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        cumulative = self._cumulative(theta)
        probs: NDArray[np.float64] = cumulative[:, :-1] - cumulative[:, 1:]
        return np.clip(probs, 0.0, 1.0)

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        cumulative = self._cumulative(theta)
        # Logistic density at each boundary; zero at the two ends
        density = cumulative * (1.0 - cumulative)

        d_slopes = theta[:, :, np.newaxis] * (
            density[:, :-1] - density[:, 1:]
        )[:, np.newaxis, :]

        n_boundaries = len(self.intercepts)
        boundary = np.arange(n_boundaries)
        d_intercepts = np.zeros(
            (theta.shape[0], n_boundaries, self.n_categories)
        )
        d_intercepts[:, boundary, boundary + 1] = density[:, 1:-1]
        d_intercepts[:, boundary, boundary] = -density[:, 1:-1]

        return np.concatenate([d_slopes, d_intercepts], axis=1)


class _DivideByTotalItem(ItemParameters):
    """
    Shared divide-by-total parameterization.

    Attributes:
        slopes: a, one per factor.
        scores: Scoring slopes ak_k, one per category. Defaults to 0..K-1.
        intercepts: d_k, one per category.
    """

    scores: tuple[float, ...]
    intercepts: tuple[float, ...]

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = (
        "slopes",
        "scores",
        "intercepts",
    )

    @model_validator(mode="before")
    @classmethod
    def _default_scores(cls, data: Any) -> Any:
        if (
            isinstance(data, dict)
            and data.get("scores") is None
            and "intercepts" in data
        ):
            data = {**data, "scores": tuple(range(len(data["intercepts"])))}
        return data

    @model_validator(mode="after")
    def _validate_category_lengths(self) -> Self:
        if len(self.intercepts) < 2:
            raise ValueError("items need at least 2 categories")
        if len(self.scores) != len(self.intercepts):
            raise ValueError(
                f"scores and intercepts must have same length, "
                f"got {len(self.scores)} and {len(self.intercepts)}"
            )
        return self

    @property
    def n_categories(self) -> int:
        return len(self.intercepts)

    def _linear_predictor(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return theta @ np.array(self.slopes)

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        logits = np.outer(
            self._linear_predictor(theta), self.scores
        ) + np.array(self.intercepts)
        return softmax(logits, axis=1)

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        probs = self.probability_trace(theta)
        scores = np.array(self.scores)
        eta = self._linear_predictor(theta)

        # dP_k/dz_h = P_k (I[k=h] - P_h), shape (n_theta, K, K)
        jacobian = probs[:, :, np.newaxis] * np.eye(self.n_categories) - (
            probs[:, :, np.newaxis] * probs[:, np.newaxis, :]
        )

        centered = probs * (scores - (probs @ scores)[:, np.newaxis])
        d_slopes = theta[:, :, np.newaxis] * centered[:, np.newaxis, :]
        d_scores = jacobian * eta[:, np.newaxis, np.newaxis]

        return np.concatenate([d_slopes, d_scores, jacobian], axis=1)


class GeneralizedPartialCreditItem(_DivideByTotalItem):
    """Generalized partial credit item with fixed category scores."""

    item_type: Literal[ItemType.GPCM] = ItemType.GPCM

    def _default_estimated(self) -> tuple[bool, ...]:
        n_cat = self.n_categories
        return (
            (True,) * self.n_factors
            + (False,) * n_cat
            + (False,)
            + (True,) * (n_cat - 1)
        )


class NominalItem(_DivideByTotalItem):
    """Bock's nominal response item."""

    item_type: Literal[ItemType.NOMINAL] = ItemType.NOMINAL

    def _default_estimated(self) -> tuple[bool, ...]:
        n_cat = self.n_categories
        return (
            (True,) * self.n_factors
            + (False,)
            + (True,) * (n_cat - 2)
            + (False,)
            + (False,)
            + (True,) * (n_cat - 1)
        )


class NestedLogitItem(ItemParameters):
    """
    Nested logit item for multiple choice data.

    Attributes:
        slopes: a, one per factor, for the correct-response 4PL.
        intercept: d of the correct-response 4PL.
        guessing: Lower asymptote g (fixed by default).
        upper: Upper asymptote u (fixed by default).
        distractor_scores: Nominal scoring slopes, one per distractor.
        distractor_intercepts: Nominal intercepts, one per distractor.
        correct: Category index of the correct response.
    """

    item_type: Literal[ItemType.NESTLOGIT] = ItemType.NESTLOGIT
    intercept: float
    guessing: float = 0.0
    upper: float = 1.0
    distractor_scores: tuple[float, ...]
    distractor_intercepts: tuple[float, ...]
    correct: int = 0

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = (
        "slopes",
        "intercept",
        "guessing",
        "upper",
        "distractor_scores",
        "distractor_intercepts",
    )

    @model_validator(mode="after")
    def _validate_distractors(self) -> Self:
        if len(self.distractor_scores) < 2:
            raise ValueError("nested logit items need at least 2 distractors")
        if len(self.distractor_scores) != len(self.distractor_intercepts):
            raise ValueError(
                "distractor_scores and distractor_intercepts must have "
                "same length"
            )
        if not (0 <= self.correct < self.n_categories):
            raise ValueError(
                f"correct must be in [0, {self.n_categories}), "
                f"got {self.correct}"
            )
        if not (0.0 <= self.guessing < self.upper <= 1.0):
            raise ValueError("asymptotes must satisfy 0 <= g < u <= 1")
        return self

    @property
    def n_categories(self) -> int:
        return len(self.distractor_scores) + 1

    def _default_estimated(self) -> tuple[bool, ...]:
        n_dist = len(self.distractor_scores)
        return (
            (True,) * (self.n_factors + 1)
            + (False, False)
            + ((False,) + (True,) * (n_dist - 1)) * 2
        )

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        theta = as_theta_matrix(theta, self.n_factors)
        z = theta @ np.array(self.slopes) + self.intercept
        p_correct = self.guessing + (self.upper - self.guessing) * logistic(z)

        logits = np.outer(theta.sum(axis=1), self.distractor_scores) + (
            np.array(self.distractor_intercepts)
        )
        distractors = (1.0 - p_correct)[:, np.newaxis] * softmax(
            logits, axis=1
        )
        return np.insert(distractors, self.correct, p_correct, axis=1)
