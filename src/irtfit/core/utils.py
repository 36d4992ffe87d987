"""
Core utility functions shared across modules.
"""

import numpy as np
from numpy.random import Generator
from numpy.typing import NDArray

# Exponent clipping bounds to prevent overflow
EXPONENT_CLIP_MIN = -30.0
EXPONENT_CLIP_MAX = 30.0


def get_rng(seed: int | np.random.SeedSequence | None = None) -> Generator:
    """
    Create a numpy random Generator with optional seed.

    Args:
        seed: Random seed (or SeedSequence) for reproducibility.
            If None, uses entropy.

    Returns:
        A numpy random Generator instance.
    """
    return np.random.default_rng(seed)


def logistic(z: NDArray[np.float64]) -> NDArray[np.float64]:
    """Numerically stable logistic function."""
    z = np.clip(z, EXPONENT_CLIP_MIN, EXPONENT_CLIP_MAX)
    result: NDArray[np.float64] = 1.0 / (1.0 + np.exp(-z))
    return result


def softmax(
    logits: NDArray[np.floating], axis: int = -1
) -> NDArray[np.float64]:
    """
    Compute softmax probabilities from logits.

    Args:
        logits: Array of logits.
        axis: Axis along which to compute softmax.

    Returns:
        Array of probabilities that sum to 1 along the specified axis.
    """
    logits = np.clip(logits, EXPONENT_CLIP_MIN, EXPONENT_CLIP_MAX)
    # Subtract max for numerical stability
    shifted = logits - np.max(logits, axis=axis, keepdims=True)
    exp_logits = np.exp(shifted)
    result: NDArray[np.float64] = exp_logits / np.sum(
        exp_logits, axis=axis, keepdims=True
    )
    return result
