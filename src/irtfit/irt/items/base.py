"""
Shared machinery for item response functions.

Every item type is an immutable pydantic model whose parameters are stored
in named fields. The flat parameter vector concatenates those fields in the
order given by ``PARAMETER_FIELDS``; scalars contribute one entry, tuples
one entry per element.
"""

from abc import abstractmethod
from typing import Any, ClassVar, Protocol, Self

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, model_validator

from irtfit.irt.enums import ItemType

# Step for central finite differences over item parameters
FINITE_DIFFERENCE_STEP = 1e-5


class ItemResponseFunction(Protocol):
    """Capability interface consumed by the fit statistics."""

    @property
    def n_categories(self) -> int: ...

    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]: ...

    def derivative(self, theta: NDArray[np.float64]) -> NDArray[np.float64]: ...


def as_theta_matrix(
    theta: NDArray[np.float64], n_factors: int
) -> NDArray[np.float64]:
    """
    Coerce latent trait values to shape (n_theta, n_factors).

    A 1D array is read as n_theta values of a single factor.
    """
    theta = np.asarray(theta, dtype=np.float64)
    if theta.ndim == 1:
        theta = theta.reshape(-1, 1)
    if theta.ndim != 2 or theta.shape[1] != n_factors:
        raise ValueError(
            f"theta must have shape (n, {n_factors}), got {theta.shape}"
        )
    return theta


class ItemParameters(BaseModel):
    """
    Base class for one item's response function and parameters.

    Attributes:
        item_type: Tag identifying the response model.
        slopes: Slope (discrimination) per latent factor.
        estimated: One flag per entry of the parameter vector; True marks a
            free parameter. None selects the item type's default
            identification constraints.
    """

    model_config = ConfigDict(frozen=True)

    item_type: ItemType
    slopes: tuple[float, ...]
    estimated: tuple[bool, ...] | None = None

    PARAMETER_FIELDS: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _validate_estimated_length(self) -> Self:
        if len(self.slopes) < 1:
            raise ValueError("items need at least one slope")
        if (
            self.estimated is not None
            and len(self.estimated) != self.n_parameters
        ):
            raise ValueError(
                f"estimated must have {self.n_parameters} entries, "
                f"got {len(self.estimated)}"
            )
        return self

    @property
    def n_factors(self) -> int:
        """Number of latent factors."""
        return len(self.slopes)

    @property
    @abstractmethod
    def n_categories(self) -> int:
        """Number of response categories."""
        ...

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Names of the entries of the flat parameter vector."""
        names: list[str] = []
        for name in self.PARAMETER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, tuple):
                names.extend(f"{name}{k}" for k in range(len(value)))
            else:
                names.append(name)
        return tuple(names)

    @property
    def n_parameters(self) -> int:
        """Length of the flat parameter vector."""
        return len(self.parameter_names)

    @property
    def free_mask(self) -> NDArray[np.bool_]:
        """Boolean mask of free parameters, shape (n_parameters,)."""
        if self.estimated is None:
            return np.array(self._default_estimated(), dtype=np.bool_)
        return np.array(self.estimated, dtype=np.bool_)

    @property
    def n_free_parameters(self) -> int:
        return int(self.free_mask.sum())

    def _default_estimated(self) -> tuple[bool, ...]:
        return tuple(True for _ in range(self.n_parameters))

    def to_array(self) -> NDArray[np.float64]:
        """Flatten parameters to a 1D array in ``parameter_names`` order."""
        parts = [
            np.atleast_1d(np.asarray(getattr(self, name), dtype=np.float64))
            for name in self.PARAMETER_FIELDS
        ]
        return np.concatenate(parts)

    def with_parameters(self, arr: NDArray[np.float64]) -> Self:
        """Return a copy with parameters taken from a flat array."""
        arr = np.asarray(arr, dtype=np.float64)
        if arr.shape != (self.n_parameters,):
            raise ValueError(
                f"expected {self.n_parameters} parameters, got {arr.shape}"
            )
        update: dict[str, Any] = {}
        offset = 0
        for name in self.PARAMETER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, tuple):
                n = len(value)
                update[name] = tuple(float(x) for x in arr[offset : offset + n])
            else:
                n = 1
                update[name] = float(arr[offset])
            offset += n
        return self.model_copy(update=update)

    @abstractmethod
    def probability_trace(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """
        Category probabilities at each theta.

        Args:
            theta: Latent trait values, shape (n_theta, n_factors).

        Returns:
            Probabilities, shape (n_theta, n_categories).
        """
        ...

    def category_derivatives(
        self, theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """
        Derivatives of category probabilities w.r.t. every parameter.

        The default is a central finite difference; item types with closed
        forms override it.

        Returns:
            Array of shape (n_theta, n_parameters, n_categories).
        """
        theta = as_theta_matrix(theta, self.n_factors)
        base = self.to_array()
        result = np.empty(
            (theta.shape[0], self.n_parameters, self.n_categories),
            dtype=np.float64,
        )
        for p in range(self.n_parameters):
            step = FINITE_DIFFERENCE_STEP * max(1.0, abs(base[p]))
            plus = base.copy()
            plus[p] += step
            minus = base.copy()
            minus[p] -= step
            result[:, p, :] = (
                self.with_parameters(plus).probability_trace(theta)
                - self.with_parameters(minus).probability_trace(theta)
            ) / (2.0 * step)
        return result

    def expected_score(self, theta: NDArray[np.float64]) -> NDArray[np.float64]:
        """Conditional expected category index, shape (n_theta,)."""
        probs = self.probability_trace(theta)
        result: NDArray[np.float64] = probs @ np.arange(
            self.n_categories, dtype=np.float64
        )
        return result

    def derivative(self, theta: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Derivative of the expected item score w.r.t. every parameter.

        Returns:
            Array of shape (n_theta, n_parameters).
        """
        scores = np.arange(self.n_categories, dtype=np.float64)
        result: NDArray[np.float64] = self.category_derivatives(theta) @ scores
        return result
