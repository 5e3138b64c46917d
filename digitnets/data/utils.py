"""Helpers turning raw image/label arrays into network samples."""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Sequence

import numpy as np

from ..core.matrix import Matrix, matrix_from_array, vector_from_array
from ..core.types import Sample

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "digitnets"
LAYOUTS = ("vector", "grid")


def resolve_cache_dir(cache_dir: str | Path | None = None) -> Path:
    """Resolve the effective cache directory for datasets."""

    base = Path(cache_dir or os.environ.get("DIGITNETS_CACHE_DIR") or DEFAULT_CACHE_DIR)
    base.mkdir(parents=True, exist_ok=True)
    return base


def offline_from_env(default: bool = True) -> bool:
    """Read ``DIGITNETS_DATA_OFFLINE`` (``"1"`` means use the offline fixture)."""

    value = os.environ.get("DIGITNETS_DATA_OFFLINE")
    if value is None:
        return default
    return value.strip() == "1"


def one_hot(label: int, num_classes: int = 10) -> Matrix:
    """Column vector with a single 1 at ``label``."""

    label = int(label)
    if not 0 <= label < num_classes:
        raise IndexError(f"Label {label} out of range for {num_classes} classes")
    target = Matrix(num_classes, 1)
    target.data[label] = 1.0
    return target


def _flatten(images) -> np.ndarray:
    images = np.asarray(images, dtype=np.float64)
    # explicit row width so an empty split keeps shape (0, pixels)
    return images.reshape(images.shape[0], int(np.prod(images.shape[1:])))


def to_samples(
    images: np.ndarray,
    labels: np.ndarray,
    *,
    layout: str = "vector",
    input_shape: Sequence[int] = (28, 28),
    num_classes: int = 10,
    max_value: float = 255.0,
) -> List[Sample]:
    """Wrap raw images as ``Sample`` pairs scaled into ``[0, 1]``.

    ``layout="vector"`` yields ``N x 1`` inputs for the FFNN, ``"grid"``
    yields ``height x width`` inputs for the CNN.
    """

    if layout not in LAYOUTS:
        raise ValueError(f"Unknown sample layout {layout!r}; expected one of {LAYOUTS}")
    images = _flatten(images)
    labels = np.asarray(labels).reshape(-1)
    if images.shape[0] != labels.shape[0]:
        raise ValueError(f"{images.shape[0]} images but {labels.shape[0]} labels")
    height, width = int(input_shape[0]), int(input_shape[1])
    samples: List[Sample] = []
    for image, label in zip(images / max_value, labels):
        pixels = image.tolist()
        inputs = (
            vector_from_array(pixels)
            if layout == "vector"
            else matrix_from_array(pixels, height, width)
        )
        samples.append(Sample(inputs=inputs, target=one_hot(int(label), num_classes)))
    return samples


def select_samples(
    images: np.ndarray,
    labels: np.ndarray,
    *,
    per_class: int = 5,
    num_classes: int = 10,
    max_value: float = 255.0,
) -> List[List[List[float]]]:
    """First ``per_class`` images of every class, scaled into ``[0, 1]``.

    Classes with fewer examples contribute what is available.
    """

    images = _flatten(images)
    labels = np.asarray(labels).reshape(-1)
    gallery: List[List[List[float]]] = []
    for cls in range(num_classes):
        picked = np.flatnonzero(labels == cls)[:per_class]
        gallery.append([(images[idx] / max_value).tolist() for idx in picked])
    return gallery


__all__ = [
    "DEFAULT_CACHE_DIR",
    "LAYOUTS",
    "offline_from_env",
    "one_hot",
    "resolve_cache_dir",
    "select_samples",
    "to_samples",
]
