"""
test_mlp_network.py
~~~~~~~~~~~~~~~~~~~

Tests for the four-layer digit classifier.
"""

import math

import numpy as np
import pytest

from mlpnet.activation import relu, softmax
from mlpnet.errors import MatrixSizeError
from mlpnet.matrix import Matrix
from mlpnet.mlp_network import Digit, MlpNetwork


@pytest.mark.unit
class TestConstruction:
    """Test network construction."""

    def test_layer_sizes(self, identity_network):
        assert identity_network.sizes == [784, 128, 64, 20, 10]

    def test_activations(self, identity_network):
        """Test that the hidden layers use relu and the output layer softmax."""
        activations = [layer.activation for layer in identity_network.layers]
        assert activations == [relu, relu, relu, softmax]

    @pytest.mark.parametrize('count', [3, 5])
    def test_requires_four_layers(self, count):
        weights = [Matrix(2, 2)] * count
        biases = [Matrix(2, 1)] * count
        with pytest.raises(ValueError):
            MlpNetwork(weights, biases)

    def test_weights_and_biases_are_copies(self, identity_network):
        identity_network.weights[0][0, 0] = 5.0
        assert identity_network.weights[0][0, 0] == 1.0
        assert [b.shape for b in identity_network.biases] == [
            (128, 1), (64, 1), (20, 1), (10, 1)
        ]

    def test_repr(self, identity_network):
        assert repr(identity_network) == "MlpNetwork(sizes=[784, 128, 64, 20, 10])"


@pytest.mark.unit
class TestClassification:
    """Test classifying images."""

    def test_zero_image_gives_first_class_uniformly(self, identity_network, zero_image):
        """Test that ten equal outputs give class 0 with probability 0.1."""
        digit = identity_network(zero_image)

        assert isinstance(digit, Digit)
        assert digit.value == 0
        assert digit.probability == pytest.approx(0.1, rel=1e-6)

    def test_image_vectorized_in_place(self, identity_network, zero_image):
        identity_network(zero_image)
        assert zero_image.shape == (784, 1)

    def test_bright_pixel_selects_class(self, identity_network):
        """Test that identity-like layers pass pixel 3 through to class 3."""
        img = Matrix(28, 28)
        img[0, 3] = 5.0

        digit = identity_network(img)

        expected = math.exp(5.0) / (math.exp(5.0) + 9)
        assert digit.value == 3
        assert digit.probability == pytest.approx(expected, rel=1e-5)

    def test_feedforward_returns_distribution(self, random_network, random_image):
        output = random_network.feedforward(random_image)

        assert output.shape == (10, 1)
        assert output.sum() == pytest.approx(1.0, abs=1e-5)
        assert all(0.0 <= p <= 1.0 for p in output)

    def test_digit_matches_feedforward(self, random_network, random_image):
        output = random_network.feedforward(random_image.copy())
        digit = random_network(random_image.copy())

        assert digit.value == int(np.argmax(output.to_numpy()))
        assert digit.probability == output[digit.value]

    def test_deterministic(self, random_network, random_image):
        first = random_network(random_image.copy())
        second = random_network(random_image.copy())
        assert first == second

    def test_wrong_image_size(self, identity_network):
        with pytest.raises(MatrixSizeError):
            identity_network(Matrix(27, 28))

    def test_network_unaffected_by_caller_matrices(self, identity_arrays, zero_image):
        weights, biases = identity_arrays
        weight_mats = [Matrix.from_array(w) for w in weights]
        net = MlpNetwork(weight_mats, [Matrix.from_array(b) for b in biases])
        weight_mats[0][0, 0] = -100.0

        assert net.weights[0][0, 0] == 1.0
        assert net(zero_image).value == 0


@pytest.mark.unit
def test_digit_from_output():
    output = Matrix.from_array([0.1, 0.6, 0.3])
    assert Digit.from_output(output) == Digit(1, output[1])
