"""
Post-processing helpers for decoded outputs.
"""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np

from .errors import ShapeMismatchError


def reshape(values: Any, shape: Sequence[int]) -> np.ndarray:
    """
    Reshape a flat slice into the given shape.

    Raises:
        ShapeMismatchError: If the number of values differs from the shape
    """
    arr = np.asarray(values)
    expected = math.prod(shape)
    if arr.size != expected:
        raise ShapeMismatchError(
            f"Cannot reshape {arr.size} values into {list(shape)} ({expected} elements)"
        )
    return arr.reshape(tuple(shape))


def mean_pool(tensor: Any, attention_mask: Any, eps: float = 1e-9) -> np.ndarray:
    """
    Average token embeddings over the sequence axis, weighted by a mask.

    For each batch row and hidden unit computes
    ``sum(value * mask) / max(sum(mask), eps)``, so an all-zero mask row
    pools to zeros instead of dividing by zero.

    Args:
        tensor: ``[batch, seq, hidden]`` float values
        attention_mask: ``[batch, seq]`` 0/1 weights
        eps: Lower bound of the denominator

    Returns:
        ``[batch, hidden]`` pooled array (float64 unless the input is wider)

    Raises:
        ShapeMismatchError: If the ranks or batch/seq dimensions disagree
    """
    values = np.asarray(tensor)
    mask = np.asarray(attention_mask)
    if values.ndim != 3:
        raise ShapeMismatchError(f"Expected a 3-D tensor, got shape {list(values.shape)}")
    if mask.ndim != 2:
        raise ShapeMismatchError(f"Expected a 2-D mask, got shape {list(mask.shape)}")
    if mask.shape != values.shape[:2]:
        raise ShapeMismatchError(
            f"Mask shape {list(mask.shape)} does not match tensor batch/seq "
            f"{list(values.shape[:2])}"
        )

    dtype = np.result_type(values.dtype, np.float64)
    weights = mask.astype(dtype)[:, :, np.newaxis]
    summed = (values.astype(dtype) * weights).sum(axis=1)
    counts = np.maximum(weights.sum(axis=1), eps)
    return summed / counts
