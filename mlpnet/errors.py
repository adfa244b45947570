"""
errors.py
~~~~~~~~~

Exceptions raised by the matrix core and the weight loaders.
"""

SIZE_ERROR = "Error: Matrix sizes are incompatible for the operation"
OUT_OF_RANGE_ERROR = "Error: Index out of range"
STREAM_ERROR = "Error: Insufficient data for matrix elements."


class MatrixError(Exception):
    """Base class for all matrix errors."""


class MatrixSizeError(MatrixError, ValueError):
    """Operand shapes violate the operation's precondition."""

    def __init__(self, message: str = SIZE_ERROR):
        super().__init__(message)


class MatrixIndexError(MatrixError, IndexError):
    """A 2-D or linear index falls outside the matrix bounds."""

    def __init__(self, message: str = OUT_OF_RANGE_ERROR):
        super().__init__(message)


class InsufficientDataError(MatrixError, EOFError):
    """A stream ran out before the matrix was fully populated."""

    def __init__(self, message: str = STREAM_ERROR):
        super().__init__(message)
