import random

import pytest

from digitnets.core.errors import ShapeError
from digitnets.core.matrix import Matrix
from digitnets.core.types import Sample
from digitnets.data.utils import one_hot
from digitnets.nn.cnn import CNN
from digitnets.nn.convolution import PoolConfig


def _small_cnn(**overrides):
    params = dict(
        input_shape=(6, 6),
        kernel_count=2,
        kernel_size=3,
        conv_activation="sigmoid",
        pool=PoolConfig(size=2, stride=2, mode="max"),
        hidden=[4],
        num_classes=3,
        activation="sigmoid",
        output_activation="softmax",
        cost="cross_entropy",
        seed=7,
    )
    params.update(overrides)
    return CNN(**params)


def _image(seed, shape=(6, 6)):
    return Matrix.random(shape[0], shape[1], random.Random(seed))


def test_default_shapes():
    net = CNN(seed=0)
    assert net.conv_shape == (24, 24)
    assert net.pooled_shape == (12, 12)
    assert net.dense_sizes == [8 * 12 * 12, 10]
    assert len(net.predict(Matrix(28, 28))) == 10


def test_rejects_wrong_input_shape():
    net = _small_cnn()
    with pytest.raises(ShapeError):
        net.predict(Matrix(5, 6))


def test_predict_is_deterministic_for_a_seed():
    image = _image(1)
    assert _small_cnn().predict(image) == _small_cnn().predict(image)


def _cost(net, image, target):
    return net.cost_of(net.output(image), target)


def _numeric(net, image, target, getter, setter, h=1e-5):
    original = getter()
    setter(original + h)
    plus = _cost(net, image, target)
    setter(original - h)
    minus = _cost(net, image, target)
    setter(original)
    return (plus - minus) / (2 * h)


@pytest.mark.parametrize("pool_mode", ["max", "average"])
def test_backpropagation_matches_finite_differences(pool_mode):
    net = _small_cnn(pool=PoolConfig(mode=pool_mode))
    image = _image(2)
    target = one_hot(1, 3)
    grads = net.backpropagate(image, target)

    for kernel, grad in zip(net.kernels, grads.kernels):
        for idx in range(len(kernel.weights.data)):
            data = kernel.weights.data
            numeric = _numeric(
                net, image, target, lambda: data[idx], lambda v: data.__setitem__(idx, v)
            )
            assert grad.data[idx] == pytest.approx(numeric, abs=1e-4)

    for kernel, bias_grad in zip(net.kernels, grads.kernel_biases):
        numeric = _numeric(
            net, image, target, lambda: kernel.bias, lambda v: setattr(kernel, "bias", v)
        )
        assert bias_grad == pytest.approx(numeric, abs=1e-4)

    for layer, grad in zip(net.layers, grads.dense):
        for idx in range(len(layer.weights.data)):
            data = layer.weights.data
            numeric = _numeric(
                net, image, target, lambda: data[idx], lambda v: data.__setitem__(idx, v)
            )
            assert grad.weights.data[idx] == pytest.approx(numeric, abs=1e-4)

    for idx in range(len(image.data)):
        data = image.data
        numeric = _numeric(
            net, image, target, lambda: data[idx], lambda v: data.__setitem__(idx, v)
        )
        assert grads.inputs.data[idx] == pytest.approx(numeric, abs=1e-4)


def test_training_reduces_cost_on_a_tiny_set():
    samples = [
        Sample(inputs=_image(10 + i), target=one_hot(i % 3, 3)) for i in range(6)
    ]
    net = _small_cnn()
    before = net.evaluate(samples).cost
    history = net.train(samples, 30, 0.1, samples, mini_batch_size=2, rng=random.Random(0))
    assert len(history) == 30
    assert history[-1].evaluation.cost < before


def test_accuracy_is_a_count_and_test_alias():
    net = _small_cnn()
    samples = [Sample(inputs=_image(i), target=one_hot(0, 3)) for i in range(4)]
    assert net.test(samples) == net.accuracy(samples)
    assert net.accuracy([]) == 0


def test_kernel_size_must_match_parameters():
    net = _small_cnn()
    with pytest.raises(ShapeError):
        _small_cnn(kernel_size=2, kernels=net.kernels)
