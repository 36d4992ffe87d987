"""
Fitted model handle consumed by the fit statistics.

A FittedModel bundles the estimated items of one or more groups, each
group's latent distribution, and the observed responses. Estimation itself
happens elsewhere; this module only describes its result.
"""

from dataclasses import dataclass, replace
from typing import Self

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, model_validator

from irtfit.core.data_models import ResponseMatrix
from irtfit.irt.items import Item

SINGLE_GROUP_NAME = "all"


class LatentDistribution(BaseModel):
    """
    Multivariate normal latent trait distribution of one group.

    Attributes:
        mean: Mean vector, one entry per factor.
        covariance: Covariance matrix as nested tuples.
        n_estimated: Number of freely estimated structural parameters
            (means, variances, covariances) counted in the model's total.
    """

    model_config = ConfigDict(frozen=True)

    mean: tuple[float, ...]
    covariance: tuple[tuple[float, ...], ...]
    n_estimated: int = 0

    @model_validator(mode="after")
    def _validate_shapes(self) -> Self:
        d = len(self.mean)
        cov = np.array(self.covariance, dtype=np.float64)
        if cov.shape != (d, d):
            raise ValueError(
                f"covariance must have shape ({d}, {d}), got {cov.shape}"
            )
        if not np.allclose(cov, cov.T):
            raise ValueError("covariance must be symmetric")
        if self.n_estimated < 0:
            raise ValueError("n_estimated must be nonnegative")
        return self

    @property
    def n_factors(self) -> int:
        return len(self.mean)

    @classmethod
    def standard(cls, n_factors: int) -> "LatentDistribution":
        """Standard multivariate normal with identity covariance."""
        identity = np.eye(n_factors)
        return cls(
            mean=tuple(0.0 for _ in range(n_factors)),
            covariance=tuple(tuple(float(x) for x in row) for row in identity),
        )


@dataclass(frozen=True)
class DiscreteLatentGrid:
    """
    Caller-supplied latent grid for discrete or mixture latent models.

    Attributes:
        points: Grid points, shape (n_points, n_factors).
        weights: Prior weight per point, shape (n_points,).
    """

    points: NDArray[np.float64]
    weights: NDArray[np.float64]

    def __post_init__(self) -> None:
        points = np.asarray(self.points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(-1, 1)
        object.__setattr__(self, "points", points)
        object.__setattr__(
            self, "weights", np.asarray(self.weights, dtype=np.float64)
        )


@dataclass(frozen=True)
class GroupModel:
    """
    Items and latent distribution of one group.

    Attributes:
        name: Group label as it appears in the model's group labels.
        items: Estimated items, one per response column.
        distribution: Latent trait distribution of the group.
        latent_grid: Discrete latent grid; when present it replaces the
            normal distribution for integration.
    """

    name: str
    items: tuple[Item, ...]
    distribution: LatentDistribution
    latent_grid: DiscreteLatentGrid | None = None

    def __post_init__(self) -> None:
        if len(self.items) == 0:
            raise ValueError("groups need at least one item")
        n_factors = {item.n_factors for item in self.items}
        if len(n_factors) != 1:
            raise ValueError(
                f"all items must have the same number of factors, "
                f"got {sorted(n_factors)}"
            )
        if self.distribution.n_factors != self.items[0].n_factors:
            raise ValueError(
                "latent distribution dimension does not match the items"
            )

    @property
    def n_factors(self) -> int:
        return self.items[0].n_factors

    @property
    def n_free_item_parameters(self) -> int:
        return sum(item.n_free_parameters for item in self.items)


@dataclass(frozen=True)
class FittedModel:
    """
    Result of fitting an IRT model.

    Attributes:
        groups: One GroupModel per group.
        data: Observed responses of all respondents in original order.
        group_labels: Group label per respondent, shape (n_respondents,).
            None for single-group models.
        n_estimated: Total number of free parameters after equality
            constraints. Defaults to free item parameters plus free
            structural parameters summed over groups.
        item_names: Optional item labels.
        mixed_effects: Whether the model carries person/item covariate
            effects; such models are not supported by the fit statistics.
    """

    groups: tuple[GroupModel, ...]
    data: ResponseMatrix
    group_labels: NDArray[np.str_] | None = None
    n_estimated: int | None = None
    item_names: tuple[str, ...] | None = None
    mixed_effects: bool = False

    def __post_init__(self) -> None:
        if len(self.groups) == 0:
            raise ValueError("model needs at least one group")
        for group in self.groups:
            if len(group.items) != self.data.n_items:
                raise ValueError(
                    f"group {group.name!r} has {len(group.items)} items, "
                    f"data has {self.data.n_items}"
                )
        if len(self.groups) > 1:
            if self.group_labels is None:
                raise ValueError("multiple-group models need group_labels")
            labels = np.asarray(self.group_labels).astype(str)
            if labels.shape != (self.data.n_respondents,):
                raise ValueError("group_labels must have one label per row")
            object.__setattr__(self, "group_labels", labels)
        if (
            self.item_names is not None
            and len(self.item_names) != self.data.n_items
        ):
            raise ValueError("item_names must have one name per item")

    @classmethod
    def single_group(
        cls,
        items: tuple[Item, ...] | list[Item],
        data: ResponseMatrix,
        distribution: LatentDistribution | None = None,
        **kwargs: object,
    ) -> "FittedModel":
        """Build a single-group model."""
        items = tuple(items)
        if distribution is None:
            distribution = LatentDistribution.standard(items[0].n_factors)
        group = GroupModel(
            name=SINGLE_GROUP_NAME, items=items, distribution=distribution
        )
        return cls(groups=(group,), data=data, **kwargs)  # type: ignore[arg-type]

    @property
    def n_items(self) -> int:
        return self.data.n_items

    @property
    def n_factors(self) -> int:
        return self.groups[0].n_factors

    @property
    def is_multigroup(self) -> bool:
        return len(self.groups) > 1

    @property
    def is_discrete(self) -> bool:
        return any(group.latent_grid is not None for group in self.groups)

    @property
    def n_structural_parameters(self) -> int:
        return sum(group.distribution.n_estimated for group in self.groups)

    @property
    def nest(self) -> int:
        """Total number of free parameters."""
        if self.n_estimated is not None:
            return self.n_estimated
        return (
            sum(group.n_free_item_parameters for group in self.groups)
            + self.n_structural_parameters
        )

    def group_rows(self, group_idx: int) -> NDArray[np.bool_]:
        """Boolean row mask of one group's respondents."""
        if not self.is_multigroup:
            return np.ones(self.data.n_respondents, dtype=np.bool_)
        assert self.group_labels is not None
        result: NDArray[np.bool_] = (
            self.group_labels == self.groups[group_idx].name
        )
        return result

    def group_data(self, group_idx: int) -> ResponseMatrix:
        """Responses of one group, keeping the pooled item minima."""
        return self.data.subset(self.group_rows(group_idx))

    def with_responses(self, responses: NDArray[np.int64]) -> Self:
        """Copy of the model with the observed responses replaced."""
        return replace(
            self, data=ResponseMatrix(responses=responses, mins=self.data.mins)
        )
