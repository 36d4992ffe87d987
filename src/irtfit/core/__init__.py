"""
Core shared types and utilities.

This module provides foundational components used across the package,
keeping the item response models decoupled from the fit statistics.
"""

from irtfit.core.utils import get_rng, logistic

__all__ = [
    "get_rng",
    "logistic",
]
