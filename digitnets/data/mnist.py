"""MNIST digits with fixed train/validation/test slices and an offline fixture."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from .cache import fetch
from .registry import DataSpec, DatasetSpec, register_dataset
from .utils import resolve_cache_dir

MNIST_URL = "https://storage.googleapis.com/tf-keras-datasets/mnist.npz"
MNIST_CHECKSUM = "731c5ac602752760c8e48fbffcf8c3b850d9dc2a2aedcf2cc48468fc17b673d1"

IMAGE_SHAPE = (28, 28)
NUM_CLASSES = 10
OFFLINE_TRAIN = 300
OFFLINE_TEST = 100


def _fixture_images(labels: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Low-intensity noise plus a bright two-row band whose position encodes the digit."""

    images = rng.integers(0, 40, size=(labels.size, *IMAGE_SHAPE), dtype=np.int64)
    for idx, label in enumerate(labels):
        top = 3 + 2 * int(label)
        images[idx, top : top + 2, 4:24] = rng.integers(200, 256, size=(2, 20))
    return images.astype(np.uint8)


def _build_offline_fixture(path: Path) -> None:
    rng = np.random.default_rng(12345)
    y_train = np.arange(OFFLINE_TRAIN, dtype=np.uint8) % NUM_CLASSES
    y_test = np.arange(OFFLINE_TEST, dtype=np.uint8)[::-1] % NUM_CLASSES
    np.savez(
        path,
        x_train=_fixture_images(y_train, rng),
        y_train=y_train,
        x_test=_fixture_images(y_test, rng),
        y_test=y_test,
    )


def _load_archive(path: Path) -> dict[str, np.ndarray]:
    with np.load(path) as data:
        keys = {key.lower(): key for key in data.files}
        return {
            name: np.asarray(data[keys[name]])
            for name in ("x_train", "y_train", "x_test", "y_test")
        }


@register_dataset("mnist")
def build_mnist(
    *,
    offline: bool = True,
    cache_dir: str | Path | None = None,
    num_train: int = 50000,
    num_val: int = 10000,
    num_test: int = 10000,
) -> DatasetSpec:
    """Create a :class:`DatasetSpec` for MNIST.

    The training archive is sliced into ``num_train`` training images followed
    by ``num_val`` validation images; ``num_test`` images come from the test
    archive. Counts are clipped to what the archive holds.
    """

    cache_root = resolve_cache_dir(cache_dir)
    path, provenance = fetch(
        name="mnist-offline" if offline else "mnist",
        url=MNIST_URL,
        checksum=MNIST_CHECKSUM,
        filename="mnist.npz",
        offline=offline,
        offline_path=cache_root / "offline" / "mnist_fixture.npz",
        offline_builder=_build_offline_fixture,
        cache_dir=cache_root,
    )
    arrays = _load_archive(path)
    x_train = arrays["x_train"].reshape(arrays["x_train"].shape[0], -1)
    x_test = arrays["x_test"].reshape(arrays["x_test"].shape[0], -1)
    y_train = arrays["y_train"].astype(np.int64)
    y_test = arrays["y_test"].astype(np.int64)

    n_train = min(int(num_train), x_train.shape[0])
    n_val = min(int(num_val), x_train.shape[0] - n_train)
    n_test = min(int(num_test), x_test.shape[0])
    slices = {
        "train": (x_train[:n_train], y_train[:n_train]),
        "val": (x_train[n_train : n_train + n_val], y_train[n_train : n_train + n_val]),
        "test": (x_test[:n_test], y_test[:n_test]),
    }

    def loader(split: str) -> tuple[np.ndarray, np.ndarray]:
        images, labels = slices[split]
        return images.copy(), labels.copy()

    provenance = dict(provenance)
    provenance.update({"num_train": n_train, "num_val": n_val, "num_test": n_test})
    data_spec = DataSpec(
        input_shape=IMAGE_SHAPE,
        num_classes=NUM_CLASSES,
        max_value=255.0,
        extra={"source": "offline-fixture" if offline else "mnist"},
    )
    return DatasetSpec(
        name="mnist",
        loader=loader,
        data_spec=data_spec,
        provenance=provenance,
        splits={split: int(images.shape[0]) for split, (images, _) in slices.items()},
    )


__all__ = ["build_mnist"]
