"""
IRT (Item Response Theory) module.

This module provides:
- Item response functions for the supported item types
- The fitted model handle consumed by the fit statistics
- The independence model used as the null baseline
- EAP ability estimation and response sampling (``irtfit.irt.abilities``,
  ``irtfit.irt.sampling``)
"""

from irtfit.irt.enums import ItemType
from irtfit.irt.model import (
    DiscreteLatentGrid,
    FittedModel,
    GroupModel,
    LatentDistribution,
)

__all__ = [
    "DiscreteLatentGrid",
    "FittedModel",
    "GroupModel",
    "ItemType",
    "LatentDistribution",
]
