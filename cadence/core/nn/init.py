"""
In-place parameter initialization
"""
import numpy as np
from typing import Callable

from cadence.core.tensor import Tensor


def uniform_(tensor: Tensor, low: float = 0.0, high: float = 1.0) -> Tensor:
    tensor.data[...] = np.random.uniform(low, high, tensor.shape)
    return tensor


def zeros_(tensor: Tensor) -> Tensor:
    tensor.data[...] = 0
    return tensor


def indexed_(tensor: Tensor, fn: Callable[[int, int], float]) -> Tensor:
    """
    Fill tensor so that its i-th element in row-major order is fn(i, numel).

    >>> indexed_(Tensor.zeros(2, 2), lambda i, n: i / n).data
    array([[0.  , 0.25],
           [0.5 , 0.75]])
    """
    count = tensor.numel()
    values = np.array([fn(i, count) for i in range(count)], dtype=tensor.dtype)
    tensor.data[...] = values.reshape(tensor.shape)
    return tensor


def indexed_parameters_(module, fn: Callable[[int, int], float]):
    """Apply indexed_ to every parameter of a layer, each with its own element count"""
    for param in module.parameters():
        indexed_(param, fn)
    return module
