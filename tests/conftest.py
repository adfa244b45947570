"""
conftest.py
~~~~~~~~~~~

Shared fixtures: fixed-shape weight arrays and networks built from them.
"""

import numpy as np
import pytest

from mlpnet.matrix import Matrix
from mlpnet.mlp_network import BIAS_DIMS, IMG_DIMS, WEIGHTS_DIMS, MlpNetwork


def identity_like_arrays():
    """Weights with ones on the diagonal and zero biases, as numpy arrays."""
    weights = [np.eye(dims.rows, dims.cols, dtype=np.float32) for dims in WEIGHTS_DIMS]
    biases = [np.zeros(tuple(dims), dtype=np.float32) for dims in BIAS_DIMS]
    return weights, biases


def random_arrays(seed: int = 0):
    """Small random weights and biases, as numpy arrays."""
    rng = np.random.default_rng(seed)
    weights = [
        (rng.standard_normal(tuple(dims)) * 0.1).astype(np.float32)
        for dims in WEIGHTS_DIMS
    ]
    biases = [
        (rng.standard_normal(tuple(dims)) * 0.1).astype(np.float32)
        for dims in BIAS_DIMS
    ]
    return weights, biases


def to_matrices(arrays):
    return [Matrix.from_array(a) for a in arrays]


@pytest.fixture
def identity_arrays():
    """Identity-like weight and bias arrays."""
    return identity_like_arrays()


@pytest.fixture
def seeded_arrays():
    return random_arrays(seed=7)


@pytest.fixture
def identity_network():
    """Network whose layers pass the first pixels straight through."""
    weights, biases = identity_like_arrays()
    return MlpNetwork(to_matrices(weights), to_matrices(biases))


@pytest.fixture
def random_network():
    """Network with small random weights and biases."""
    weights, biases = random_arrays()
    return MlpNetwork(to_matrices(weights), to_matrices(biases))


@pytest.fixture
def zero_image():
    return Matrix(*IMG_DIMS)


@pytest.fixture
def random_image():
    rng = np.random.default_rng(42)
    return Matrix.from_array(rng.random(tuple(IMG_DIMS), dtype=np.float32))
