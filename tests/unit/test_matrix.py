import random

import pytest

from digitnets.core.errors import ShapeError
from digitnets.core.matrix import Matrix, matrix_from_array, vector_from_array


def _random(rows, cols, seed):
    return Matrix.random(rows, cols, random.Random(seed))


def test_add_then_subtract_restores_operand():
    a = _random(3, 4, 0)
    b = _random(3, 4, 1)
    restored = a.add(b).sub(b)
    assert restored.allclose(a, 1e-12)
    assert (a + b - b).allclose(a, 1e-12)


def test_pure_operations_leave_operands_untouched():
    a = Matrix.from_rows([[1.0, 2.0], [3.0, 4.0]])
    b = Matrix.from_rows([[5.0, 6.0], [7.0, 8.0]])
    before_a, before_b = a.copy(), b.copy()
    a.add(b)
    a.hadamard(b)
    a.multiply(b)
    a.map(lambda x: x * 2)
    assert a == before_a
    assert b == before_b


def test_in_place_operations_mutate_and_return_none():
    a = Matrix.from_rows([[1.0, 2.0], [3.0, 4.0]])
    assert a.iadd(Matrix.from_rows([[1.0, 1.0], [1.0, 1.0]])) is None
    assert a.to_rows() == [[2.0, 3.0], [4.0, 5.0]]
    assert a.idiv(2) is None
    assert a.to_rows() == [[1.0, 1.5], [2.0, 2.5]]
    a -= Matrix(2, 2, [1.0, 1.0, 1.0, 1.0])
    assert a.to_rows() == [[0.0, 0.5], [1.0, 1.5]]
    a *= 2
    assert a.to_rows() == [[0.0, 1.0], [2.0, 3.0]]


def test_multiply_shape_and_identity():
    a = _random(3, 4, 2)
    b = _random(4, 5, 3)
    assert a.multiply(b).shape == (3, 5)
    assert a.multiply(Matrix.identity(4)).allclose(a, 1e-12)
    assert Matrix.identity(3).multiply(a).allclose(a, 1e-12)


def test_multiply_matches_hand_computation():
    a = Matrix.from_rows([[1.0, 2.0], [3.0, 4.0]])
    b = Matrix.from_rows([[5.0, 6.0], [7.0, 8.0]])
    assert (a @ b).to_rows() == [[19.0, 22.0], [43.0, 50.0]]


def test_shape_mismatches_raise():
    with pytest.raises(ShapeError):
        Matrix(2, 3).add(Matrix(3, 2))
    with pytest.raises(ShapeError):
        Matrix(2, 3).multiply(Matrix(2, 3))
    with pytest.raises(ShapeError):
        Matrix(2, 2).iadd(Matrix(2, 1))
    with pytest.raises(ShapeError):
        Matrix(0, 3)
    with pytest.raises(ShapeError):
        Matrix.from_rows([[1.0, 2.0], [3.0]])


def test_transpose_and_flip():
    a = Matrix.from_rows([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    assert a.transpose().to_rows() == [[1.0, 4.0], [2.0, 5.0], [3.0, 6.0]]
    assert a.transpose().transpose() == a
    assert a.flip().to_rows() == [[6.0, 5.0, 4.0], [3.0, 2.0, 1.0]]


def test_indexing_and_argmax():
    a = Matrix.from_rows([[1.0, 7.0], [7.0, 2.0]])
    assert a[1, 0] == 7.0
    assert a.argmax() == 1
    a[0, 0] = 9.0
    assert a.argmax() == 0
    with pytest.raises(IndexError):
        a[2, 0]


def test_array_views():
    vec = vector_from_array([0.0, 0.5, 1.0])
    assert vec.shape == (3, 1)
    grid = matrix_from_array(range(6), 2, 3)
    assert grid.to_rows() == [[0.0, 1.0, 2.0], [3.0, 4.0, 5.0]]
    with pytest.raises(ShapeError):
        matrix_from_array(range(5), 2, 3)
    with pytest.raises(ShapeError):
        vector_from_array([])


def test_randomize_is_seeded():
    assert _random(4, 4, 11) == _random(4, 4, 11)
    assert _random(4, 4, 11) != _random(4, 4, 12)
