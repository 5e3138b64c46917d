import random

import pytest

from digitnets.core.errors import ShapeError
from digitnets.core.matrix import vector_from_array
from digitnets.core.types import Sample
from digitnets.data.utils import one_hot
from digitnets.nn.ffnn import FFNN
from digitnets.training.metrics import argmax


def _sample(values, label, classes):
    return Sample(inputs=vector_from_array(values), target=one_hot(label, classes))


def _identity_set(n=10):
    samples = []
    for label in range(n):
        values = [0.0] * n
        values[label] = 1.0
        samples.append(_sample(values, label, n))
    return samples


def test_predict_is_deterministic_for_a_seed():
    inputs = vector_from_array([0.1 * i for i in range(6)])
    first = FFNN([6, 5, 3], seed=4)
    second = FFNN([6, 5, 3], seed=4)
    assert first.predict(inputs) == first.predict(inputs)
    assert first.predict(inputs) == second.predict(inputs)
    assert len(first.predict(inputs)) == 3


def test_predict_rejects_wrong_input_size():
    net = FFNN([4, 3, 2], seed=0)
    with pytest.raises(ShapeError):
        net.predict(vector_from_array([1.0, 2.0]))


def test_requires_two_layer_sizes():
    with pytest.raises(ShapeError):
        FFNN([4])


def _numeric_gradient(net, sample, matrix, idx, h=1e-5):
    original = matrix.data[idx]
    matrix.data[idx] = original + h
    plus = net.cost_of(net.output(sample.inputs), sample.target)
    matrix.data[idx] = original - h
    minus = net.cost_of(net.output(sample.inputs), sample.target)
    matrix.data[idx] = original
    return (plus - minus) / (2 * h)


@pytest.mark.parametrize(
    "activation,output_activation,cost",
    [
        ("sigmoid", None, "quadratic"),
        ("sigmoid", "sigmoid", "cross_entropy"),
        ("sigmoid", "softmax", "cross_entropy"),
    ],
)
def test_backpropagation_matches_finite_differences(activation, output_activation, cost):
    net = FFNN(
        [4, 5, 3],
        activation=activation,
        output_activation=output_activation,
        cost=cost,
        seed=1,
    )
    sample = _sample([0.2, -0.4, 0.9, 0.5], 2, 3)
    grads = net.backpropagate(sample.inputs, sample.target)
    for layer, grad in zip(net.layers, grads):
        for idx in range(len(layer.weights.data)):
            numeric = _numeric_gradient(net, sample, layer.weights, idx)
            assert grad.weights.data[idx] == pytest.approx(numeric, abs=1e-4)
        for idx in range(len(layer.biases.data)):
            numeric = _numeric_gradient(net, sample, layer.biases, idx)
            assert grad.biases.data[idx] == pytest.approx(numeric, abs=1e-4)


def test_sgd_overfits_ten_samples():
    samples = _identity_set()
    net = FFNN([10, 16, 10], cost="cross_entropy", seed=3)
    net.stochastic_gradient_descent(
        samples, 500, 2, 1.0, rng=random.Random(0)
    )
    assert net.accuracy(samples) == len(samples)


def test_sgd_reports_each_epoch():
    samples = _identity_set()
    seen = []
    net = FFNN([10, 4, 10], seed=5)
    history = net.stochastic_gradient_descent(
        samples,
        3,
        5,
        0.5,
        test_set=samples,
        rng=random.Random(1),
        callbacks=[lambda epoch, metrics: seen.append((epoch, metrics["total"]))],
    )
    assert [report.epoch for report in history] == [1, 2, 3]
    assert all(report.evaluation.total == 10 for report in history)
    assert seen == [(1, 10.0), (2, 10.0), (3, 10.0)]


def test_regularization_shrinks_weights_without_gradient():
    net = FFNN([2, 2], seed=0)
    before = net.layers[0].weights.copy()
    sample = _sample([0.0, 0.0], 0, 2)
    # Zero input gives a zero weight gradient, leaving only the decay term.
    net.update_mini_batch([sample], learning_rate=0.5, regularization=0.1)
    assert net.layers[0].weights.allclose(before.scale(1 - 0.05), 1e-12)


def test_accuracy_is_a_count_and_empty_dataset_scores_zero():
    net = FFNN([10, 10], seed=2)
    assert net.accuracy([]) == 0
    evaluation = net.evaluate([])
    assert evaluation.correct == 0
    assert evaluation.total == 0
    assert evaluation.fraction == 0.0
    count = net.accuracy(_identity_set())
    assert isinstance(count, int)
    assert 0 <= count <= 10


def test_initialize_normalization_is_explicit_and_cached():
    samples = [
        _sample([1.0, 3.0, 7.0], 0, 2),
        _sample([3.0, 5.0, 7.0], 1, 2),
    ]
    net = FFNN([3, 2], seed=0)
    assert net.normalization is None
    stats = net.initialize_normalization(samples)
    assert stats.mean.to_list() == [2.0, 4.0, 7.0]
    assert stats.std.to_list() == [1.0, 1.0, 0.0]
    assert net.initialize_normalization(samples[:1]) is stats
    standardized = stats.apply(vector_from_array([2.0, 5.0, 7.0]))
    assert standardized.to_list() == pytest.approx([0.0, 1.0, 0.0])


def test_normalization_rejects_mismatched_inputs():
    net = FFNN([3, 2], seed=0)
    with pytest.raises(ShapeError):
        net.initialize_normalization([_sample([1.0, 2.0], 0, 2)])


def test_argmax_picks_first_maximum():
    assert argmax([0.1, 0.9, 0.9]) == 1
    with pytest.raises(IndexError):
        argmax([])


def test_layer_parameters_must_chain():
    net = FFNN([3, 4, 2], seed=0)
    with pytest.raises(ShapeError):
        FFNN([3, 4, 2], layers=[net.layers[1], net.layers[0]])
