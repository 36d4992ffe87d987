"""
Response data containers.

This module defines:
- ResponseMatrix: integer category responses with missing values
"""

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from irtfit.core.constants import MISSING_VALUE


@dataclass(frozen=True)
class ResponseMatrix:
    """
    Categorical response data.

    Attributes:
        responses: Array of shape (n_respondents, n_items) containing raw
            category codes (nonnegative integers). Missing responses are
            indicated by MISSING_VALUE.
        mins: Per-item minimum observed code, shape (n_items,). Computed from
            the data when not supplied; supply it explicitly when the matrix
            is a subset (e.g. one group) of a larger dataset so that codes
            stay aligned.
    """

    responses: NDArray[np.int64]
    mins: NDArray[np.int64] = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        """Validate response matrix."""
        responses = np.asarray(self.responses, dtype=np.int64)
        if responses.ndim != 2:
            raise ValueError(
                f"responses must be 2D, got shape {responses.shape}"
            )
        valid = responses[responses != MISSING_VALUE]
        if len(valid) > 0 and valid.min() < 0:
            raise ValueError(
                f"Response values must be >= 0, got min {valid.min()}"
            )
        object.__setattr__(self, "responses", responses)

        if self.mins is None:
            mins = _column_minima(responses)
        else:
            mins = np.asarray(self.mins, dtype=np.int64)
            if mins.shape != (responses.shape[1],):
                raise ValueError(
                    f"mins must have shape ({responses.shape[1]},), "
                    f"got {mins.shape}"
                )
        object.__setattr__(self, "mins", mins)

    @property
    def n_respondents(self) -> int:
        """Number of respondents (rows)."""
        return self.responses.shape[0]

    @property
    def n_items(self) -> int:
        """Number of items (columns)."""
        return self.responses.shape[1]

    @property
    def missing_mask(self) -> NDArray[np.bool_]:
        """Boolean mask where True indicates missing response."""
        result: NDArray[np.bool_] = self.responses == MISSING_VALUE
        return result

    @property
    def has_missing(self) -> bool:
        """Whether any response is missing."""
        return bool(self.missing_mask.any())

    def centered(self) -> NDArray[np.int64]:
        """
        Responses with the per-item minimum subtracted (0-indexed codes).

        Missing entries remain MISSING_VALUE.
        """
        result = self.responses - self.mins[np.newaxis, :]
        result[self.missing_mask] = MISSING_VALUE
        return result

    def observed_support(self, item_idx: int) -> NDArray[np.int64]:
        """Sorted distinct observed raw codes for one item."""
        column = self.responses[:, item_idx]
        return np.unique(column[column != MISSING_VALUE])

    def subset(self, rows: NDArray[np.bool_]) -> "ResponseMatrix":
        """Select respondents, keeping this matrix's item minima."""
        return ResponseMatrix(responses=self.responses[rows], mins=self.mins)


def _column_minima(responses: NDArray[np.int64]) -> NDArray[np.int64]:
    """Per-column minimum over non-missing values (0 for all-missing)."""
    masked = np.where(
        responses == MISSING_VALUE, np.iinfo(np.int64).max, responses
    )
    mins = masked.min(axis=0) if responses.shape[0] > 0 else None
    if mins is None:
        return np.zeros(responses.shape[1], dtype=np.int64)
    mins[mins == np.iinfo(np.int64).max] = 0
    result: NDArray[np.int64] = mins.astype(np.int64)
    return result
