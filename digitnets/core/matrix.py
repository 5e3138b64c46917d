"""Dense row-major matrices built on plain Python floats."""

from __future__ import annotations

import math
import random
from typing import Callable, Iterable, Iterator, List, Sequence, Tuple, Union

from .errors import ShapeError

Scalar = Union[int, float]


class Matrix:
    """A ``rows x cols`` matrix stored as a flat row-major list.

    Named operations (``add``, ``sub``, ``div``, ``hadamard``, ``map``,
    ``multiply``...) return new matrices and leave their operands untouched.
    Mutation is explicit: ``iadd``/``isub``/``idiv``/``imap``/``randomize``
    change the receiver and return ``None``, and the augmented operators
    (``+=``, ``-=``, ``*=``, ``/=``) do the same through Python's protocol.
    """

    __slots__ = ("rows", "cols", "data")

    def __init__(self, rows: int, cols: int, data: Sequence[float] | None = None) -> None:
        rows, cols = int(rows), int(cols)
        if rows <= 0 or cols <= 0:
            raise ShapeError(f"Matrix dimensions must be positive, got {rows}x{cols}")
        if data is None:
            values = [0.0] * (rows * cols)
        else:
            values = [float(v) for v in data]
            if len(values) != rows * cols:
                raise ShapeError(
                    f"Buffer of length {len(values)} cannot fill a {rows}x{cols} matrix"
                )
        self.rows = rows
        self.cols = cols
        self.data: List[float] = values

    # ------------------------------------------------------------------
    # Constructors

    @classmethod
    def identity(cls, n: int) -> "Matrix":
        out = cls(n, n)
        for i in range(n):
            out.data[i * n + i] = 1.0
        return out

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]]) -> "Matrix":
        """Build a matrix from a rectangular nested sequence."""

        if not rows or not rows[0]:
            raise ShapeError("Cannot build a matrix from an empty sequence")
        width = len(rows[0])
        flat: List[float] = []
        for idx, row in enumerate(rows):
            if len(row) != width:
                raise ShapeError(f"Row {idx} has {len(row)} columns, expected {width}")
            flat.extend(row)
        return cls(len(rows), width, flat)

    @classmethod
    def random(
        cls, rows: int, cols: int, rng: random.Random | None = None, scale: float = 1.0
    ) -> "Matrix":
        out = cls(rows, cols)
        out.randomize(rng, scale)
        return out

    # ------------------------------------------------------------------
    # Introspection

    @property
    def shape(self) -> Tuple[int, int]:
        return self.rows, self.cols

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self) -> Iterator[float]:
        return iter(self.data)

    def _offset(self, key: Tuple[int, int]) -> int:
        r, c = key
        if not (0 <= r < self.rows and 0 <= c < self.cols):
            raise IndexError(f"Index ({r}, {c}) out of range for {self.rows}x{self.cols} matrix")
        return r * self.cols + c

    def __getitem__(self, key: Tuple[int, int]) -> float:
        return self.data[self._offset(key)]

    def __setitem__(self, key: Tuple[int, int], value: float) -> None:
        self.data[self._offset(key)] = float(value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and self.data == other.data

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Matrix({self.rows}x{self.cols}, {self.to_rows()!r})"

    def to_list(self) -> List[float]:
        return list(self.data)

    def to_rows(self) -> List[List[float]]:
        c = self.cols
        return [self.data[r * c : (r + 1) * c] for r in range(self.rows)]

    def copy(self) -> "Matrix":
        return Matrix(self.rows, self.cols, self.data)

    def reshape(self, rows: int, cols: int) -> "Matrix":
        return Matrix(rows, cols, self.data)

    def sum(self) -> float:
        return math.fsum(self.data)

    def max(self) -> float:
        return max(self.data)

    def argmax(self) -> int:
        """Flat index of the first maximum element."""

        best = 0
        for idx, value in enumerate(self.data):
            if value > self.data[best]:
                best = idx
        return best

    def allclose(self, other: "Matrix", tol: float = 1e-9) -> bool:
        if self.shape != other.shape:
            return False
        return all(abs(a - b) <= tol for a, b in zip(self.data, other.data))

    # ------------------------------------------------------------------
    # Pure elementwise operations

    def _check_same_shape(self, other: "Matrix", op: str) -> None:
        if self.shape != other.shape:
            raise ShapeError(
                f"Cannot {op} {self.rows}x{self.cols} and {other.rows}x{other.cols} matrices"
            )

    def _zip(self, other: "Matrix", op: str, fn: Callable[[float, float], float]) -> "Matrix":
        self._check_same_shape(other, op)
        return Matrix(self.rows, self.cols, [fn(a, b) for a, b in zip(self.data, other.data)])

    def add(self, other: "Matrix") -> "Matrix":
        return self._zip(other, "add", lambda a, b: a + b)

    def sub(self, other: "Matrix") -> "Matrix":
        return self._zip(other, "subtract", lambda a, b: a - b)

    def hadamard(self, other: "Matrix") -> "Matrix":
        return self._zip(other, "multiply elementwise", lambda a, b: a * b)

    def div(self, other: Union["Matrix", Scalar]) -> "Matrix":
        if isinstance(other, Matrix):
            return self._zip(other, "divide", lambda a, b: a / b)
        divisor = float(other)
        return Matrix(self.rows, self.cols, [a / divisor for a in self.data])

    def scale(self, factor: Scalar) -> "Matrix":
        factor = float(factor)
        return Matrix(self.rows, self.cols, [a * factor for a in self.data])

    def map(self, fn: Callable[[float], float]) -> "Matrix":
        return Matrix(self.rows, self.cols, [fn(a) for a in self.data])

    # ------------------------------------------------------------------
    # Explicit in-place operations

    def iadd(self, other: "Matrix") -> None:
        self._check_same_shape(other, "add")
        data = self.data
        for idx, value in enumerate(other.data):
            data[idx] += value

    def isub(self, other: "Matrix") -> None:
        self._check_same_shape(other, "subtract")
        data = self.data
        for idx, value in enumerate(other.data):
            data[idx] -= value

    def idiv(self, other: Union["Matrix", Scalar]) -> None:
        if isinstance(other, Matrix):
            self._check_same_shape(other, "divide")
            self.data = [a / b for a, b in zip(self.data, other.data)]
        else:
            divisor = float(other)
            self.data = [a / divisor for a in self.data]

    def imul(self, other: Union["Matrix", Scalar]) -> None:
        if isinstance(other, Matrix):
            self._check_same_shape(other, "multiply elementwise")
            self.data = [a * b for a, b in zip(self.data, other.data)]
        else:
            factor = float(other)
            self.data = [a * factor for a in self.data]

    def imap(self, fn: Callable[[float], float]) -> None:
        self.data = [fn(a) for a in self.data]

    def randomize(self, rng: random.Random | None = None, scale: float = 1.0) -> None:
        """Fill with samples from ``N(0, 1) * scale``."""

        gauss = (rng or random).gauss
        self.data = [gauss(0.0, 1.0) * scale for _ in range(self.rows * self.cols)]

    # ------------------------------------------------------------------
    # Linear algebra

    def multiply(self, other: "Matrix") -> "Matrix":
        if self.cols != other.rows:
            raise ShapeError(
                f"Cannot multiply {self.rows}x{self.cols} by {other.rows}x{other.cols}"
            )
        n, m, p = self.rows, self.cols, other.cols
        a, b = self.data, other.data
        out = [0.0] * (n * p)
        for i in range(n):
            row = a[i * m : (i + 1) * m]
            base = i * p
            for k, a_ik in enumerate(row):
                if a_ik == 0.0:
                    continue
                b_off = k * p
                for j in range(p):
                    out[base + j] += a_ik * b[b_off + j]
        return Matrix(n, p, out)

    def transpose(self) -> "Matrix":
        r, c = self.rows, self.cols
        data = self.data
        return Matrix(c, r, [data[i * c + j] for j in range(c) for i in range(r)])

    def flip(self) -> "Matrix":
        """Rotate by 180 degrees (flip both spatial axes)."""

        return Matrix(self.rows, self.cols, self.data[::-1])

    # ------------------------------------------------------------------
    # Operator sugar

    def __add__(self, other: "Matrix") -> "Matrix":
        return self.add(other)

    def __sub__(self, other: "Matrix") -> "Matrix":
        return self.sub(other)

    def __mul__(self, other: Union["Matrix", Scalar]) -> "Matrix":
        if isinstance(other, Matrix):
            return self.hadamard(other)
        return self.scale(other)

    __rmul__ = __mul__

    def __truediv__(self, other: Union["Matrix", Scalar]) -> "Matrix":
        return self.div(other)

    def __matmul__(self, other: "Matrix") -> "Matrix":
        return self.multiply(other)

    def __neg__(self) -> "Matrix":
        return self.scale(-1.0)

    def __iadd__(self, other: "Matrix") -> "Matrix":
        self.iadd(other)
        return self

    def __isub__(self, other: "Matrix") -> "Matrix":
        self.isub(other)
        return self

    def __imul__(self, other: Union["Matrix", Scalar]) -> "Matrix":
        self.imul(other)
        return self

    def __itruediv__(self, other: Union["Matrix", Scalar]) -> "Matrix":
        self.idiv(other)
        return self


def vector_from_array(array: Iterable[float]) -> Matrix:
    """Wrap a flat sequence as an ``N x 1`` column vector."""

    values = [float(v) for v in array]
    if not values:
        raise ShapeError("Cannot build a vector from an empty sequence")
    return Matrix(len(values), 1, values)


def matrix_from_array(array: Iterable[float], height: int, width: int) -> Matrix:
    """Present a flattened row-major buffer as a ``height x width`` grid."""

    values = [float(v) for v in array]
    if len(values) != height * width:
        raise ShapeError(
            f"Buffer of length {len(values)} cannot be viewed as {height}x{width}"
        )
    return Matrix(height, width, values)


__all__ = ["Matrix", "matrix_from_array", "vector_from_array"]
