"""
Independence (null) model used as the baseline for TLI and CFI.

Every item becomes a one-factor nominal item whose slope is fixed at zero,
so responses are independent of the latent trait and of each other. The
maximum likelihood intercepts are then available in closed form: the log
odds of each category against the lowest one, computed per group from the
observed category proportions.
"""

import logging

import numpy as np

from irtfit.core.constants import MISSING_VALUE
from irtfit.fit.exceptions import NullModelConvergenceError
from irtfit.irt.items import NominalItem
from irtfit.irt.model import FittedModel, GroupModel, LatentDistribution

logger = logging.getLogger(__name__)


def independence_item(counts: np.ndarray) -> NominalItem:
    """
    Closed-form independence item from category counts.

    Args:
        counts: Observed count of each 0-indexed category.

    Raises:
        NullModelConvergenceError: If a category was never observed; its
            intercept would diverge to minus infinity.
    """
    if np.any(counts <= 0):
        empty = np.flatnonzero(counts <= 0).tolist()
        raise NullModelConvergenceError(
            f"independence model does not converge: categories {empty} "
            f"have no observed responses"
        )
    log_counts = np.log(counts.astype(np.float64))
    intercepts = tuple(float(x) for x in log_counts - log_counts[0])
    n_cat = len(counts)
    return NominalItem(
        slopes=(0.0,),
        scores=tuple(float(k) for k in range(n_cat)),
        intercepts=intercepts,
        estimated=(False,) + (False,) * n_cat + (False,) + (True,) * (n_cat - 1),
    )


def fit_independence_model(model: FittedModel) -> FittedModel:
    """
    Fit the independence model to the responses of a fitted model.

    Category counts follow the fitted items; each group gets its own
    intercepts and a standard normal prior. Respondents with a missing
    response are ignored for that item only.

    Args:
        model: Fitted model whose data, groups and category counts are
            reused.

    Returns:
        FittedModel with the same data and group labels.

    Raises:
        NullModelConvergenceError: If a group never uses some category of
            an item.
    """
    groups: list[GroupModel] = []
    for g, group in enumerate(model.groups):
        centered = model.group_data(g).centered()
        items = []
        for j, item in enumerate(group.items):
            column = centered[:, j]
            column = column[column != MISSING_VALUE]
            counts = np.bincount(column, minlength=item.n_categories)
            if len(counts) > item.n_categories:
                raise NullModelConvergenceError(
                    f"item {j} has responses above category "
                    f"{item.n_categories - 1}"
                )
            try:
                items.append(independence_item(counts))
            except NullModelConvergenceError as e:
                raise NullModelConvergenceError(
                    f"group {group.name!r}, item {j}: {e}"
                ) from e
        groups.append(
            GroupModel(
                name=group.name,
                items=tuple(items),
                distribution=LatentDistribution.standard(1),
            )
        )

    null_model = FittedModel(
        groups=tuple(groups),
        data=model.data,
        group_labels=model.group_labels,
        item_names=model.item_names,
    )
    logger.debug(
        f"Independence model fitted with {null_model.nest} free parameters"
    )
    return null_model
