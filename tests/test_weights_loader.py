"""
test_weights_loader.py
~~~~~~~~~~~~~~~~~~~~~~

Tests for reading weights from raw binary files and .npz archives.
"""

import io

import numpy as np
import pytest

from mlpnet.errors import InsufficientDataError, MatrixSizeError
from mlpnet.matrix import Matrix, MatrixDims
from mlpnet.mlp_network import MlpNetwork
from mlpnet.weights_loader import (
    check_shapes,
    convert_binary_to_npz,
    load_binary_weights,
    load_npz,
    read_matrix,
    save_npz,
)


@pytest.fixture
def arrays(seeded_arrays):
    return seeded_arrays


def to_matrices(arrays):
    return [Matrix.from_array(a) for a in arrays]


@pytest.fixture
def binary_files(tmp_path, arrays):
    """Write the weight and bias arrays as raw float32 files."""
    weights, biases = arrays
    weight_paths, bias_paths = [], []
    for i, (w, b) in enumerate(zip(weights, biases), start=1):
        w_path = tmp_path / f"w{i}"
        b_path = tmp_path / f"b{i}"
        w_path.write_bytes(w.astype('<f4').tobytes())
        b_path.write_bytes(b.astype('<f4').tobytes())
        weight_paths.append(str(w_path))
        bias_paths.append(str(b_path))
    return weight_paths, bias_paths


def assert_network_matches(network, arrays):
    weights, biases = arrays
    for mat, expected in zip(network.weights, weights):
        np.testing.assert_array_equal(mat.to_numpy(), expected)
    for mat, expected in zip(network.biases, biases):
        np.testing.assert_array_equal(mat.to_numpy(), expected)


@pytest.mark.unit
class TestReadMatrix:
    """Test reading single matrices from raw binary sources."""

    def test_read_from_path(self, tmp_path):
        path = tmp_path / "m.bin"
        path.write_bytes(np.arange(6, dtype='<f4').tobytes())

        mat = read_matrix(str(path), MatrixDims(2, 3))

        assert mat.to_numpy().tolist() == [[0, 1, 2], [3, 4, 5]]

    def test_read_from_file_object(self):
        stream = io.BytesIO(np.ones(4, dtype='<f4').tobytes())
        assert list(read_matrix(stream, MatrixDims(4, 1))) == [1.0] * 4

    def test_short_file_raises(self, tmp_path):
        """Test that a file with too few values raises insufficient-data."""
        path = tmp_path / "short.bin"
        path.write_bytes(np.arange(5, dtype='<f4').tobytes())

        with pytest.raises(InsufficientDataError):
            read_matrix(str(path), MatrixDims(2, 3))

    def test_consecutive_reads_share_stream(self):
        stream = io.BytesIO(np.arange(4, dtype='<f4').tobytes())
        first = read_matrix(stream, MatrixDims(1, 2))
        second = read_matrix(stream, MatrixDims(1, 2))

        assert list(first) == [0.0, 1.0]
        assert list(second) == [2.0, 3.0]


@pytest.mark.unit
class TestCheckShapes:
    """Test validation against the fixed layer shapes."""

    def test_valid_shapes(self, arrays):
        weights, biases = arrays
        check_shapes(to_matrices(weights), to_matrices(biases))

    def test_wrong_weight_shape(self, arrays):
        weights, biases = arrays
        weight_mats = to_matrices(weights)
        weight_mats[2] = Matrix(64, 20)

        with pytest.raises(MatrixSizeError, match="Layer 3 weights"):
            check_shapes(weight_mats, to_matrices(biases))

    def test_wrong_bias_shape(self, arrays):
        weights, biases = arrays
        bias_mats = to_matrices(biases)
        bias_mats[0] = Matrix(1, 128)

        with pytest.raises(MatrixSizeError, match="Layer 1 bias"):
            check_shapes(to_matrices(weights), bias_mats)

    def test_wrong_count(self, arrays):
        weights, biases = arrays
        with pytest.raises(MatrixSizeError):
            check_shapes(to_matrices(weights)[:3], to_matrices(biases))


@pytest.mark.integration
class TestBinaryWeights:
    """Test building networks from the eight raw binary files."""

    def test_load_binary_weights(self, binary_files, arrays):
        network = load_binary_weights(*binary_files)

        assert isinstance(network, MlpNetwork)
        assert network.sizes == [784, 128, 64, 20, 10]
        assert_network_matches(network, arrays)

    def test_truncated_weight_file(self, binary_files):
        weight_paths, bias_paths = binary_files
        with open(weight_paths[1], 'r+b') as f:
            f.truncate(100)

        with pytest.raises(InsufficientDataError):
            load_binary_weights(weight_paths, bias_paths)

    def test_wrong_number_of_files(self, binary_files):
        weight_paths, bias_paths = binary_files
        with pytest.raises(ValueError):
            load_binary_weights(weight_paths[:2], bias_paths)

    def test_convert_binary_to_npz(self, tmp_path, binary_files, arrays):
        npz_path = str(tmp_path / "weights.npz")

        convert_binary_to_npz(*binary_files, npz_path)

        assert_network_matches(load_npz(npz_path), arrays)


@pytest.mark.unit
class TestNpz:
    """Test .npz archives."""

    def test_save_and_load(self, random_network):
        buffer = io.BytesIO()
        save_npz(random_network, buffer)
        buffer.seek(0)

        loaded = load_npz(buffer)

        for original, restored in zip(random_network.weights, loaded.weights):
            assert original == restored
        for original, restored in zip(random_network.biases, loaded.biases):
            assert original == restored

    def test_missing_array(self, arrays):
        weights, biases = arrays
        buffer = io.BytesIO()
        np.savez(buffer, w0=weights[0], b0=biases[0])
        buffer.seek(0)

        with pytest.raises(ValueError, match="missing array"):
            load_npz(buffer)

    def test_wrong_shape_in_archive(self, arrays):
        weights, biases = arrays
        contents = {f'w{i}': w for i, w in enumerate(weights)}
        contents.update({f'b{i}': b for i, b in enumerate(biases)})
        contents['w0'] = weights[0].T
        buffer = io.BytesIO()
        np.savez(buffer, **contents)
        buffer.seek(0)

        with pytest.raises(MatrixSizeError):
            load_npz(buffer)

    def test_not_an_archive(self):
        with pytest.raises(ValueError):
            load_npz(io.BytesIO(b"definitely not an archive"))

    def test_empty_source(self):
        with pytest.raises(ValueError):
            load_npz(io.BytesIO(b""))
