"""
matrix.py
~~~~~~~~~

Dense row-major float32 matrix used by the inference pipeline.

Every Matrix owns a flat numpy buffer of exactly ``rows * cols`` elements.
Copies and assignments always duplicate that buffer, so two Matrix values
never share storage.
"""

import numbers
import operator
from typing import Any, BinaryIO, Iterator, NamedTuple, Optional, TextIO, Tuple

import numpy as np

from mlpnet.errors import InsufficientDataError, MatrixIndexError, MatrixSizeError

DTYPE = np.float32

# Little-endian float32, the layout of the binary weight files
STREAM_DTYPE = np.dtype('<f4')

# Elements above this value are drawn as "**" by str()
BIG_ENOUGH = 0.1

# Residual magnitudes below this are snapped to zero after RREF
RREF_TOLERANCE = 1e-3

PIVOT_ROW_NOT_FOUND = -1


class MatrixDims(NamedTuple):
    """Expected shape of a matrix."""
    rows: int
    cols: int


class Matrix:
    """
    Dense two-dimensional float32 matrix.

    Elements are addressed either as ``m[row, col]`` or linearly as ``m[k]``
    in row-major order. Negative indices are out of range; they never wrap.
    """

    # Make numpy scalars defer to __rmul__ instead of broadcasting over us
    __array_ufunc__ = None

    def __init__(self, rows: int = 1, cols: int = 1):
        """
        Create a zero-filled matrix.

        Args:
            rows: Number of rows, must be positive
            cols: Number of columns, must be positive

        Raises:
            MatrixSizeError: If either dimension is not a positive integer
        """
        try:
            rows, cols = operator.index(rows), operator.index(cols)
        except TypeError as e:
            raise MatrixSizeError(f"Matrix dimensions must be integers: {e}") from e
        if rows <= 0 or cols <= 0:
            raise MatrixSizeError()
        self._rows = rows
        self._cols = cols
        self._data = np.zeros(self._rows * self._cols, dtype=DTYPE)

    @classmethod
    def from_array(cls, values: Any) -> 'Matrix':
        """
        Build a matrix from a 2-D nested sequence or array.

        A one-dimensional input becomes a column vector.

        Args:
            values: Anything ``numpy.array`` accepts

        Returns:
            A new Matrix holding a float32 copy of ``values``

        Raises:
            MatrixSizeError: If ``values`` is empty or not 1-D/2-D
        """
        array = np.array(values, dtype=DTYPE)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2 or array.size == 0:
            raise MatrixSizeError()

        mat = cls(*array.shape)
        mat._data = array.reshape(-1)
        return mat

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Tuple[int, int]:
        return self._rows, self._cols

    @property
    def size(self) -> int:
        return self._rows * self._cols

    def __len__(self) -> int:
        return self.size

    # ------------------------------------------------------------------
    # Copy and assignment
    # ------------------------------------------------------------------

    def copy(self) -> 'Matrix':
        """Return an independent deep copy."""
        mat = Matrix.__new__(Matrix)
        mat._rows = self._rows
        mat._cols = self._cols
        mat._data = self._data.copy()
        return mat

    __copy__ = copy

    def __deepcopy__(self, memo: dict) -> 'Matrix':
        return self.copy()

    def assign(self, other: 'Matrix') -> 'Matrix':
        """
        Replace this matrix's shape and contents with a copy of ``other``.

        Self-assignment leaves the matrix untouched.

        Returns:
            self
        """
        if other is self:
            return self
        self._rows = other._rows
        self._cols = other._cols
        self._data = other._data.copy()
        return self

    def to_numpy(self) -> np.ndarray:
        """Return a 2-D float32 copy of the contents."""
        return self._grid().copy()

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _flat_index(self, key: Any) -> int:
        if isinstance(key, tuple):
            if len(key) != 2:
                raise MatrixIndexError()
            row, col = operator.index(key[0]), operator.index(key[1])
            if not (0 <= row < self._rows and 0 <= col < self._cols):
                raise MatrixIndexError()
            return row * self._cols + col

        k = operator.index(key)
        if not 0 <= k < self.size:
            raise MatrixIndexError()
        return k

    def __getitem__(self, key: Any) -> float:
        return float(self._data[self._flat_index(key)])

    def __setitem__(self, key: Any, value: float) -> None:
        self._data[self._flat_index(key)] = value

    def __iter__(self) -> Iterator[float]:
        return (float(value) for value in self._data)

    def _grid(self) -> np.ndarray:
        # Writable 2-D view over the flat store
        return self._data.reshape(self._rows, self._cols)

    # ------------------------------------------------------------------
    # Structural mutation
    # ------------------------------------------------------------------

    def transpose(self) -> 'Matrix':
        """Transpose in place and return self."""
        self._data = np.ascontiguousarray(self._grid().T).reshape(-1)
        self._rows, self._cols = self._cols, self._rows
        return self

    def transposed(self) -> 'Matrix':
        """Return a transposed copy, leaving this matrix unchanged."""
        return self.copy().transpose()

    def vectorize(self) -> 'Matrix':
        """Reshape in place into a single ``rows*cols`` x 1 column."""
        self._rows, self._cols = self._rows * self._cols, 1
        return self

    def vectorized(self) -> 'Matrix':
        """Return a column-vector copy, leaving this matrix unchanged."""
        return self.copy().vectorize()

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _check_same_shape(self, other: 'Matrix') -> None:
        if self.shape != other.shape:
            raise MatrixSizeError()

    def __add__(self, other: 'Matrix') -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        self._check_same_shape(other)
        result = self.copy()
        result._data += other._data
        return result

    def __iadd__(self, other: 'Matrix') -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        self._check_same_shape(other)
        self._data += other._data
        return self

    def dot(self, other: 'Matrix') -> 'Matrix':
        """
        Elementwise (Hadamard) product.

        Raises:
            MatrixSizeError: If the shapes differ
        """
        self._check_same_shape(other)
        result = self.copy()
        result._data *= other._data
        return result

    def matmul(self, other: 'Matrix') -> 'Matrix':
        """
        Matrix product ``self x other``.

        Raises:
            MatrixSizeError: If ``self.cols != other.rows``
        """
        if self._cols != other._rows:
            raise MatrixSizeError()
        result = Matrix(self._rows, other._cols)
        result._data = np.matmul(self._grid(), other._grid()).astype(DTYPE).reshape(-1)
        return result

    def _scaled(self, scalar: float) -> 'Matrix':
        result = self.copy()
        result._data *= DTYPE(scalar)
        return result

    def __mul__(self, other: Any) -> 'Matrix':
        if isinstance(other, Matrix):
            return self.matmul(other)
        if isinstance(other, numbers.Real):
            return self._scaled(other)
        return NotImplemented

    def __rmul__(self, other: Any) -> 'Matrix':
        if isinstance(other, numbers.Real):
            return self._scaled(other)
        return NotImplemented

    def __matmul__(self, other: Any) -> 'Matrix':
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.matmul(other)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    def norm(self) -> float:
        """Frobenius norm over the flattened store."""
        return float(np.sqrt(np.sum(self._data * self._data)))

    def sum(self) -> float:
        return float(np.sum(self._data))

    def argmax(self) -> int:
        """
        Linear index of the greatest element.

        Ties keep the first index. NaN never replaces the running maximum,
        so a NaN in position 0 yields 0.
        """
        if np.isnan(self._data[0]):
            return 0
        return int(np.nanargmax(self._data))

    def rref(self) -> 'Matrix':
        """
        Reduced row-echelon form by Gauss-Jordan elimination.

        The pivot of each column is the first non-zero entry at or below the
        current row. When the lead column runs past the last column the
        partially reduced copy is returned immediately; otherwise residual
        elements below ``RREF_TOLERANCE`` are set to zero at the end.

        Returns:
            A new Matrix; this one is not modified
        """
        result = self.copy()
        grid = result._grid()
        rows, cols = result.shape

        lead = 0
        row = 0
        while row < rows:
            if lead >= cols:
                return result
            pivot_row = _find_pivot_row(grid, row, lead)
            if pivot_row == PIVOT_ROW_NOT_FOUND:
                lead += 1
                if lead == cols:
                    return result
                # retry the same row against the next column
                continue
            _swap_rows(grid, pivot_row, row)
            _divide_row(grid, row, grid[row, lead])
            _eliminate_rows(grid, row, lead)
            lead += 1
            row += 1

        _round_small_values(grid)
        return result

    # ------------------------------------------------------------------
    # Text and stream I/O
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        lines = [
            ''.join('**' if value > BIG_ENOUGH else '  ' for value in row)
            for row in self._grid().astype(np.float64)
        ]
        return '\n'.join(lines) + '\n'

    def __repr__(self) -> str:
        return f"Matrix(rows={self._rows}, cols={self._cols})"

    def plain_str(self) -> str:
        """Every element followed by a space, one line per row."""
        return ''.join(
            ''.join(f"{value:g} " for value in row) + '\n'
            for row in self._grid().astype(np.float64)
        )

    def plain_print(self, file: Optional[TextIO] = None) -> None:
        print(self.plain_str(), end='', file=file)

    def read_from(self, stream: BinaryIO) -> 'Matrix':
        """
        Fill the matrix from a binary stream of little-endian float32 values.

        Args:
            stream: Binary file-like object positioned at the first element

        Returns:
            self

        Raises:
            InsufficientDataError: If the stream ends before every element
                has been read
        """
        nbytes = self.size * STREAM_DTYPE.itemsize
        raw = stream.read(nbytes)
        if raw is None or len(raw) < nbytes:
            raise InsufficientDataError()
        self._data = np.frombuffer(raw, dtype=STREAM_DTYPE).astype(DTYPE)
        return self

    def write_to(self, stream: BinaryIO) -> None:
        """Write the elements to ``stream`` in the layout read_from expects."""
        stream.write(self._data.astype(STREAM_DTYPE).tobytes())


# ----------------------------------------------------------------------
# RREF row operations (operate on a 2-D view in place)
# ----------------------------------------------------------------------

def _find_pivot_row(grid: np.ndarray, current_row: int, lead: int) -> int:
    """First row at or below ``current_row`` with a non-zero ``lead`` entry."""
    candidates = np.flatnonzero(grid[current_row:, lead] != 0)
    if candidates.size == 0:
        return PIVOT_ROW_NOT_FOUND
    return current_row + int(candidates[0])


def _swap_rows(grid: np.ndarray, row1: int, row2: int) -> None:
    if row1 != row2:
        grid[[row1, row2]] = grid[[row2, row1]]


def _divide_row(grid: np.ndarray, row: int, divisor: float) -> None:
    grid[row] /= divisor


def _eliminate_rows(grid: np.ndarray, pivot_row: int, lead: int) -> None:
    """Zero the ``lead`` column of every row except the pivot row."""
    others = np.arange(grid.shape[0]) != pivot_row
    factors = grid[others, lead]
    grid[others] -= np.outer(factors, grid[pivot_row])


def _round_small_values(grid: np.ndarray) -> None:
    grid[np.abs(grid) < RREF_TOLERANCE] = 0
