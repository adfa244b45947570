"""
activation.py
~~~~~~~~~~~~~

Elementwise activation functions for dense layers.

An activation is any callable taking a Matrix and returning a new Matrix of
the same shape without touching its input.
"""

from typing import Callable, Dict, Optional

import numpy as np

from mlpnet.matrix import Matrix

ActivationFunc = Callable[[Matrix], Matrix]


def relu(mat: Matrix) -> Matrix:
    """Rectified linear unit: keep values >= 0, replace the rest with 0."""
    values = mat.to_numpy()
    values[~(values >= 0)] = 0
    return Matrix.from_array(values)


def softmax(mat: Matrix) -> Matrix:
    """
    Normalized exponential over every element of ``mat``.

    The exponentials are not shifted by the maximum first, so large inputs
    overflow to ``inf`` and the result then contains ``nan``.
    """
    exps = Matrix.from_array(np.exp(mat.to_numpy()))
    scalar = np.float32(1) / np.float32(exps.sum())
    return exps * scalar


ACTIVATIONS: Dict[str, ActivationFunc] = {
    'relu': relu,
    'softmax': softmax,
}


def get_activation(name: str) -> ActivationFunc:
    """
    Look up an activation function by name.

    Args:
        name: Registry name, e.g. ``"relu"``

    Returns:
        The activation function

    Raises:
        ValueError: If the name is unknown
    """
    try:
        return ACTIVATIONS[name]
    except KeyError:
        raise ValueError(
            f"Unknown activation '{name}'. Choose from {sorted(ACTIVATIONS)}."
        ) from None


def activation_name(func: ActivationFunc) -> Optional[str]:
    """Registry name of ``func``, or None for a custom activation."""
    for name, registered in ACTIVATIONS.items():
        if registered is func:
            return name
    return None
