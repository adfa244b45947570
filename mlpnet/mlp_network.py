"""
mlp_network.py
~~~~~~~~~~~~~~

Fixed four-layer perceptron classifying 28x28 digit images.

The layer chain is 784 -> 128 -> 64 -> 20 -> 10, with ReLU on the three
hidden layers and softmax on the output layer.
"""

import logging
from typing import List, NamedTuple, Sequence

from mlpnet.activation import relu, softmax
from mlpnet.dense import Dense
from mlpnet.matrix import Matrix, MatrixDims

logger = logging.getLogger(__name__)

MLP_SIZE = 4

IMG_DIMS = MatrixDims(28, 28)
WEIGHTS_DIMS = (
    MatrixDims(128, 784),
    MatrixDims(64, 128),
    MatrixDims(20, 64),
    MatrixDims(10, 20),
)
BIAS_DIMS = (
    MatrixDims(128, 1),
    MatrixDims(64, 1),
    MatrixDims(20, 1),
    MatrixDims(10, 1),
)


class Digit(NamedTuple):
    """Classified digit and the probability the network assigned to it."""
    value: int
    probability: float

    @classmethod
    def from_output(cls, output: Matrix) -> 'Digit':
        """Pick the most probable class from a network output column."""
        index = output.argmax()
        return cls(index, output[index])


class MlpNetwork:
    """
    Multi-layer perceptron with pretrained weights.

    Example:
        >>> net = MlpNetwork(weights, biases)
        >>> digit = net(image)
        >>> print(f"{digit.value} ({digit.probability:.1%})")
    """

    def __init__(self, weights: Sequence[Matrix], biases: Sequence[Matrix]):
        """
        Bind the four weight and bias matrices to the layers, in order.

        Args:
            weights: Weight matrices, shapes as in WEIGHTS_DIMS
            biases: Bias columns, shapes as in BIAS_DIMS

        Raises:
            ValueError: If there are not exactly four of each
        """
        if len(weights) != MLP_SIZE or len(biases) != MLP_SIZE:
            raise ValueError(
                f"Expected {MLP_SIZE} weight and {MLP_SIZE} bias matrices, "
                f"got {len(weights)} and {len(biases)}"
            )

        activations = [relu] * (MLP_SIZE - 1) + [softmax]
        self._layers = tuple(
            Dense(w, b, act) for w, b, act in zip(weights, biases, activations)
        )
        logger.debug(f"Built network with layer sizes {self.sizes}")

    @property
    def layers(self) -> tuple:
        return self._layers

    @property
    def sizes(self) -> List[int]:
        """Input size followed by each layer's output size."""
        return [self._layers[0].in_features] + [
            layer.out_features for layer in self._layers
        ]

    @property
    def weights(self) -> List[Matrix]:
        return [layer.weights for layer in self._layers]

    @property
    def biases(self) -> List[Matrix]:
        return [layer.bias for layer in self._layers]

    def feedforward(self, img: Matrix) -> Matrix:
        """
        Run ``img`` through all four layers.

        ``img`` is vectorized in place into a 784 x 1 column first.

        Returns:
            The 10 x 1 output distribution
        """
        output = img.vectorize()
        for layer in self._layers:
            output = layer(output)
        return output

    def __call__(self, img: Matrix) -> Digit:
        """
        Classify a 28x28 image.

        Raises:
            MatrixSizeError: If the image does not fit the first layer
        """
        return Digit.from_output(self.feedforward(img))

    def __repr__(self) -> str:
        return f"MlpNetwork(sizes={self.sizes})"
