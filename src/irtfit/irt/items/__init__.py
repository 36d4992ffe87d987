"""
Item response functions.

The item types form a closed set discriminated by ``item_type``:
- DichotomousItem ("dich"), IdealPointItem ("ideal"),
  PartiallyCompensatoryItem ("partcomp")
- GradedItem ("graded"), GeneralizedPartialCreditItem ("gpcm"),
  NominalItem ("nominal"), NestedLogitItem ("nestlogit")
"""

from typing import Annotated

from pydantic import Field

from irtfit.irt.items.base import (
    ItemParameters,
    ItemResponseFunction,
    as_theta_matrix,
)
from irtfit.irt.items.dichotomous import (
    DichotomousItem,
    IdealPointItem,
    PartiallyCompensatoryItem,
)
from irtfit.irt.items.polytomous import (
    GeneralizedPartialCreditItem,
    GradedItem,
    NestedLogitItem,
    NominalItem,
)

Item = Annotated[
    DichotomousItem
    | GradedItem
    | GeneralizedPartialCreditItem
    | NominalItem
    | NestedLogitItem
    | IdealPointItem
    | PartiallyCompensatoryItem,
    Field(discriminator="item_type"),
]

__all__ = [
    "DichotomousItem",
    "GeneralizedPartialCreditItem",
    "GradedItem",
    "IdealPointItem",
    "Item",
    "ItemParameters",
    "ItemResponseFunction",
    "NestedLogitItem",
    "NominalItem",
    "PartiallyCompensatoryItem",
    "as_theta_matrix",
]
