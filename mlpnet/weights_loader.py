"""
weights_loader.py
~~~~~~~~~~~~~~~~~

Reading pretrained weights into Matrix values.

Two formats are supported:
- raw binary files, one per matrix, holding little-endian float32 values in
  row-major order (the format the weights were originally exported in)
- a single ``.npz`` archive with arrays ``w0..w3`` and ``b0..b3``
"""

import logging
import os
import zipfile
from typing import BinaryIO, List, Sequence, Union

import numpy as np

from mlpnet.errors import MatrixSizeError
from mlpnet.matrix import Matrix, MatrixDims
from mlpnet.mlp_network import BIAS_DIMS, MLP_SIZE, WEIGHTS_DIMS, MlpNetwork

logger = logging.getLogger(__name__)

PathOrFile = Union[str, os.PathLike, BinaryIO]


def read_matrix(source: PathOrFile, dims: MatrixDims) -> Matrix:
    """
    Read one matrix of the given shape from a raw binary source.

    Args:
        source: File path or open binary file
        dims: Shape of the matrix to read

    Returns:
        The populated Matrix

    Raises:
        InsufficientDataError: If the source holds fewer than
            ``rows * cols`` values
    """
    mat = Matrix(*dims)
    if hasattr(source, 'read'):
        return mat.read_from(source)
    with open(source, 'rb') as f:
        return mat.read_from(f)


def check_shapes(weights: Sequence[Matrix], biases: Sequence[Matrix]) -> None:
    """
    Verify that the matrices match the network's fixed layer shapes.

    Raises:
        MatrixSizeError: On a wrong count or any mismatching shape
    """
    if len(weights) != MLP_SIZE or len(biases) != MLP_SIZE:
        raise MatrixSizeError(
            f"Expected {MLP_SIZE} weight and {MLP_SIZE} bias matrices, "
            f"got {len(weights)} and {len(biases)}"
        )

    for kind, mats, expected_dims in (('weights', weights, WEIGHTS_DIMS),
                                      ('bias', biases, BIAS_DIMS)):
        for i, (mat, expected) in enumerate(zip(mats, expected_dims)):
            if mat.shape != tuple(expected):
                raise MatrixSizeError(
                    f"Layer {i + 1} {kind} has shape {mat.shape}, "
                    f"expected {tuple(expected)}"
                )


def load_binary_weights(
    weight_paths: Sequence[PathOrFile],
    bias_paths: Sequence[PathOrFile]
) -> MlpNetwork:
    """
    Build a network from four raw weight files and four raw bias files.

    Args:
        weight_paths: Weight sources, first layer first
        bias_paths: Bias sources, first layer first

    Returns:
        MlpNetwork bound to the loaded matrices

    Raises:
        ValueError: If not exactly four of each source are given
        InsufficientDataError: If any source is too short
    """
    if len(weight_paths) != MLP_SIZE or len(bias_paths) != MLP_SIZE:
        raise ValueError(
            f"Expected {MLP_SIZE} weight and {MLP_SIZE} bias files, "
            f"got {len(weight_paths)} and {len(bias_paths)}"
        )

    weights = [read_matrix(p, d) for p, d in zip(weight_paths, WEIGHTS_DIMS)]
    biases = [read_matrix(p, d) for p, d in zip(bias_paths, BIAS_DIMS)]

    logger.info(f"Loaded {MLP_SIZE} weight and {MLP_SIZE} bias matrices")
    return MlpNetwork(weights, biases)


def save_npz(network: MlpNetwork, target: PathOrFile) -> None:
    """Write a network's matrices to a compressed ``.npz`` archive."""
    arrays = {}
    for i, (w, b) in enumerate(zip(network.weights, network.biases)):
        arrays[f'w{i}'] = w.to_numpy()
        arrays[f'b{i}'] = b.to_numpy()
    np.savez_compressed(target, **arrays)


def load_npz(source: PathOrFile) -> MlpNetwork:
    """
    Build a network from a ``.npz`` archive written by save_npz.

    Raises:
        ValueError: If the archive is missing an array or is not an archive
        MatrixSizeError: If any array has the wrong shape
    """
    try:
        data = np.load(source)
    except (OSError, EOFError, zipfile.BadZipFile) as e:
        raise ValueError(f"Unreadable weights archive: {e}") from e
    if not hasattr(data, 'files'):
        raise ValueError("Expected an .npz archive, got a single array")

    with data:
        try:
            weights = _matrices_from(data, 'w')
            biases = _matrices_from(data, 'b')
        except KeyError as e:
            raise ValueError(f"Weights archive is missing array {e}") from e

    check_shapes(weights, biases)
    return MlpNetwork(weights, biases)


def _matrices_from(data, prefix: str) -> List[Matrix]:
    return [Matrix.from_array(data[f'{prefix}{i}']) for i in range(MLP_SIZE)]


def convert_binary_to_npz(
    weight_paths: Sequence[PathOrFile],
    bias_paths: Sequence[PathOrFile],
    npz_path: PathOrFile
) -> MlpNetwork:
    """
    Load raw binary weights and store them as a single ``.npz`` archive.

    Returns:
        The loaded network
    """
    network = load_binary_weights(weight_paths, bias_paths)
    save_npz(network, npz_path)
    logger.info(f"Wrote weights archive {npz_path}")
    return network
