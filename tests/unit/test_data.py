import numpy as np
import pytest

from digitnets.data import get_dataset
from digitnets.data.cache import CacheError, CacheManifest, fetch
from digitnets.data.registry import available_datasets
from digitnets.data.utils import offline_from_env, one_hot, select_samples, to_samples


def test_offline_mnist_splits(tmp_path):
    spec = get_dataset("mnist", offline=True, cache_dir=tmp_path, num_train=30, num_val=10, num_test=20)
    assert spec.splits == {"train": 30, "val": 10, "test": 20}
    images, labels = spec.arrays("train")
    assert images.shape == (30, 784)
    assert labels.shape == (30,)
    assert images.max() <= 255
    assert set(labels.tolist()) == set(range(10))
    assert spec.provenance["mode"] == "offline"
    assert spec.data_spec.d_in == 784
    with pytest.raises(ValueError):
        spec.arrays("holdout")


def test_offline_fixture_is_reproducible(tmp_path):
    first = get_dataset("mnist", offline=True, cache_dir=tmp_path / "a", num_train=5)
    second = get_dataset("mnist", offline=True, cache_dir=tmp_path / "b", num_train=5)
    np.testing.assert_array_equal(first.arrays("train")[0], second.arrays("train")[0])


def test_split_counts_are_clipped(tmp_path):
    spec = get_dataset("mnist", offline=True, cache_dir=tmp_path, num_train=290, num_val=50, num_test=500)
    assert spec.splits == {"train": 290, "val": 10, "test": 100}


def test_registry_lists_mnist():
    assert "mnist" in available_datasets()
    with pytest.raises(KeyError):
        get_dataset("cifar10")


def test_one_hot():
    target = one_hot(3)
    assert target.shape == (10, 1)
    assert target.to_list() == [0.0, 0.0, 0.0, 1.0] + [0.0] * 6
    with pytest.raises(IndexError):
        one_hot(10)


def test_to_samples_layouts():
    images = np.array([[0, 255, 51, 102], [255, 0, 0, 0]])
    labels = np.array([1, 0])
    vectors = to_samples(images, labels, input_shape=(2, 2), num_classes=2)
    assert vectors[0].inputs.shape == (4, 1)
    assert vectors[0].inputs.to_list() == pytest.approx([0.0, 1.0, 0.2, 0.4])
    assert vectors[0].target.to_list() == [0.0, 1.0]
    grids = to_samples(images, labels, layout="grid", input_shape=(2, 2), num_classes=2)
    assert grids[1].inputs.to_rows() == [[1.0, 0.0], [0.0, 0.0]]
    with pytest.raises(ValueError):
        to_samples(images, labels[:1])
    with pytest.raises(ValueError):
        to_samples(images, labels, layout="volume")


def test_select_samples_takes_first_of_each_class():
    images = np.arange(12 * 4).reshape(12, 4)
    labels = np.array([0, 1, 2, 0, 1, 2, 0, 1, 2, 0, 1, 1])
    gallery = select_samples(images, labels, per_class=2, num_classes=4, max_value=1.0)
    assert [len(group) for group in gallery] == [2, 2, 2, 0]
    assert gallery[0][1] == images[3].astype(float).tolist()


def test_empty_split_yields_no_samples():
    assert to_samples(np.zeros((0, 784)), np.zeros((0,), dtype=int)) == []
    assert to_samples(np.zeros((0, 28, 28)), np.zeros((0,), dtype=int), layout="grid") == []
    assert select_samples(np.zeros((0, 784)), np.zeros((0,), dtype=int), num_classes=3) == [[], [], []]


def test_offline_flag_from_environment(monkeypatch):
    monkeypatch.delenv("DIGITNETS_DATA_OFFLINE", raising=False)
    assert offline_from_env() is True
    monkeypatch.setenv("DIGITNETS_DATA_OFFLINE", "0")
    assert offline_from_env() is False


def test_cache_manifest_records(tmp_path):
    manifest = CacheManifest(tmp_path)
    offline_path = tmp_path / "fixture.bin"

    def _builder(path):
        path.write_bytes(b"data")

    path, record = fetch(
        name="unit-fixture",
        url="http://example.com/unit",
        offline=True,
        offline_path=offline_path,
        offline_builder=_builder,
        cache_dir=tmp_path,
        manifest=manifest,
    )
    assert path == offline_path
    assert record["mode"] == "offline"
    assert CacheManifest(tmp_path).get("unit-fixture")["checksum"] == record["checksum"]


def test_cached_archive_is_reused(tmp_path):
    cached = tmp_path / "archive.npz"
    cached.write_bytes(b"payload")
    path, record = fetch("cached", "http://example.com/archive.npz", cache_dir=tmp_path)
    assert path == cached
    assert record["mode"] == "cache"


def test_offline_without_fixture_fails(tmp_path):
    with pytest.raises(CacheError):
        fetch("missing", "http://example.com/x", offline=True, cache_dir=tmp_path)
