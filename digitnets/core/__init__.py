"""Core numerical primitives for digitnets."""

from . import activations, errors, matrix, normalization, types
from .errors import InvalidModelError, ShapeError
from .matrix import Matrix, matrix_from_array, vector_from_array

__all__ = [
    "InvalidModelError",
    "Matrix",
    "ShapeError",
    "activations",
    "errors",
    "matrix",
    "matrix_from_array",
    "normalization",
    "types",
    "vector_from_array",
]
