import json
import random

import pytest

from digitnets.core.errors import InvalidModelError
from digitnets.core.matrix import Matrix, vector_from_array
from digitnets.core.types import Sample
from digitnets.data.utils import one_hot
from digitnets.nn import CNN, FFNN, PoolConfig, from_document, load_model, save_model, to_document


def _ffnn_document():
    return FFNN([3, 4, 2], seed=0).to_document()


def _cnn():
    return CNN(
        input_shape=(6, 6),
        kernel_count=2,
        kernel_size=3,
        pool=PoolConfig(size=2, stride=2),
        num_classes=3,
        seed=1,
    )


def test_ffnn_round_trip_preserves_predictions(tmp_path):
    net = FFNN([3, 4, 2], activation="relu", output_activation="softmax", cost="cross_entropy", seed=2)
    net.initialize_normalization(
        [Sample(inputs=vector_from_array([0.1, 0.5, 0.9]), target=one_hot(0, 2)),
         Sample(inputs=vector_from_array([0.3, 0.1, 0.2]), target=one_hot(1, 2))]
    )
    path = save_model(net, tmp_path / "ffnn.json")
    loaded = load_model(path)
    assert isinstance(loaded, FFNN)
    probe = vector_from_array([0.25, -0.5, 1.0])
    assert loaded.predict(probe) == net.predict(probe)
    assert loaded.sizes == [3, 4, 2]
    assert loaded.normalization.mean == net.normalization.mean
    assert to_document(loaded) == to_document(net)


def test_cnn_round_trip_preserves_predictions(tmp_path):
    net = _cnn()
    net.kernels[0].bias = 0.25
    path = save_model(net, tmp_path / "cnn.json")
    loaded = load_model(path)
    assert isinstance(loaded, CNN)
    probe = Matrix.random(6, 6, random.Random(3))
    assert loaded.predict(probe) == net.predict(probe)
    assert loaded.pool == net.pool
    assert json.loads(json.dumps(net.to_document())) == loaded.to_document()


def test_unknown_field_is_rejected():
    document = _ffnn_document()
    document["momentum"] = 0.9
    with pytest.raises(InvalidModelError, match="unknown fields"):
        from_document(document)


def test_missing_field_is_rejected():
    document = _ffnn_document()
    del document["layers"]
    with pytest.raises(InvalidModelError, match="missing"):
        from_document(document)


def test_nested_unknown_field_is_rejected():
    document = _cnn().to_document()
    document["conv"]["dilation"] = 2
    with pytest.raises(InvalidModelError):
        from_document(document)


def test_weight_shape_mismatch_is_rejected():
    document = _ffnn_document()
    document["layers"][0]["weights"][0].append(1.0)
    with pytest.raises(InvalidModelError):
        from_document(document)


def test_declared_sizes_must_match_parameters():
    document = _ffnn_document()
    document["sizes"] = [3, 5, 2]
    with pytest.raises(InvalidModelError):
        from_document(document)


def test_cnn_dense_input_must_match_pooled_maps():
    document = _cnn().to_document()
    document["conv"]["kernel_count"] = 1
    document["conv"]["kernels"] = document["conv"]["kernels"][:1]
    with pytest.raises(InvalidModelError, match="Inconsistent CNN"):
        from_document(document)


def test_non_finite_and_wrong_types_are_rejected():
    document = _ffnn_document()
    document["layers"][1]["biases"][0] = float("nan")
    with pytest.raises(InvalidModelError):
        from_document(document)
    with pytest.raises(InvalidModelError):
        from_document({"type": "rnn"})
    with pytest.raises(InvalidModelError):
        from_document([1, 2, 3])


def test_unreadable_file_is_invalid_model(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(InvalidModelError):
        load_model(path)


def test_yaml_documents_load(tmp_path):
    yaml = pytest.importorskip("yaml")
    net = FFNN([2, 2], seed=4)
    path = tmp_path / "model.yaml"
    path.write_text(yaml.safe_dump(net.to_document()))
    loaded = load_model(path)
    probe = vector_from_array([0.5, 0.5])
    assert loaded.predict(probe) == net.predict(probe)
