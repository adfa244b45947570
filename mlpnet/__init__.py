"""
mlpnet package
~~~~~~~~~~~~~~

Dense float32 matrices and a pretrained four-layer perceptron for MNIST
digit recognition. Also contains weight loading, model persistence and the
API server.
"""

from mlpnet.activation import relu, softmax
from mlpnet.dense import Dense
from mlpnet.errors import (
    InsufficientDataError,
    MatrixError,
    MatrixIndexError,
    MatrixSizeError,
)
from mlpnet.matrix import Matrix, MatrixDims
from mlpnet.mlp_network import Digit, MlpNetwork

__version__ = "1.0.0"

__all__ = [
    'Matrix',
    'MatrixDims',
    'MatrixError',
    'MatrixSizeError',
    'MatrixIndexError',
    'InsufficientDataError',
    'relu',
    'softmax',
    'Dense',
    'Digit',
    'MlpNetwork',
]
