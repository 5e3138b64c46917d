"""Exception types raised by the numeric engine."""

from __future__ import annotations


class ShapeError(ValueError):
    """Raised when matrix or network dimensions are incompatible."""


class InvalidModelError(ValueError):
    """Raised when a serialized model is malformed or inconsistent."""


__all__ = ["InvalidModelError", "ShapeError"]
