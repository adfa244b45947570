"""
dense.py
~~~~~~~~

Fully connected layer: ``activation(weights x input + bias)``.
"""

from typing import Union

from mlpnet.activation import ActivationFunc, activation_name, get_activation
from mlpnet.matrix import Matrix


class Dense:
    """
    A single dense layer binding a weight matrix, a bias column and an
    activation function.

    The layer keeps private copies of its matrices and is never modified by
    being called.
    """

    def __init__(
        self,
        weights: Matrix,
        bias: Matrix,
        activation: Union[ActivationFunc, str]
    ):
        """
        Args:
            weights: Weight matrix of shape (out_features, in_features)
            bias: Bias column of shape (out_features, 1)
            activation: Activation callable or its registry name
        """
        if isinstance(activation, str):
            activation = get_activation(activation)
        self._weights = weights.copy()
        self._bias = bias.copy()
        self._activation = activation

    @property
    def weights(self) -> Matrix:
        return self._weights.copy()

    @property
    def bias(self) -> Matrix:
        return self._bias.copy()

    @property
    def activation(self) -> ActivationFunc:
        return self._activation

    @property
    def in_features(self) -> int:
        return self._weights.cols

    @property
    def out_features(self) -> int:
        return self._weights.rows

    def __call__(self, input_vec: Matrix) -> Matrix:
        """
        Apply the layer to a column vector.

        Raises:
            MatrixSizeError: If ``input_vec`` does not fit the weight or
                bias shapes
        """
        return self._activation(self._weights * input_vec + self._bias)

    def __repr__(self) -> str:
        name = activation_name(self._activation) or getattr(
            self._activation, '__name__', repr(self._activation)
        )
        return (f"Dense(in_features={self.in_features}, "
                f"out_features={self.out_features}, activation={name})")
