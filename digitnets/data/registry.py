"""Dataset registry and metadata contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, MutableMapping, Tuple

import numpy as np

SPLITS = ("train", "val", "test")

Arrays = Tuple[np.ndarray, np.ndarray]


@dataclass(frozen=True)
class DataSpec:
    """Structural information about an image classification dataset.

    Attributes
    ----------
    input_shape:
        Height and width of every image.
    num_classes:
        Number of discrete labels; targets are one-hot vectors of this length.
    max_value:
        Raw intensity ceiling used to scale pixels into ``[0, 1]``.
    extra:
        Free-form metadata preserved in run manifests.
    """

    input_shape: Tuple[int, int]
    num_classes: int
    max_value: float = 255.0
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def d_in(self) -> int:
        return self.input_shape[0] * self.input_shape[1]


@dataclass(frozen=True)
class DatasetSpec:
    """Description of a dataset registered in the system.

    ``loader(split)`` returns ``(images, labels)`` where ``images`` has shape
    ``(n, height * width)`` with raw intensities and ``labels`` holds integer
    class indices.
    """

    name: str
    loader: Callable[[str], Arrays]
    data_spec: DataSpec
    provenance: Dict[str, Any]
    splits: Dict[str, int]

    def arrays(self, split: str) -> Arrays:
        if split not in SPLITS:
            raise ValueError(f"Unknown split: {split}")
        return self.loader(split)


DatasetFactory = Callable[..., DatasetSpec]


_REGISTRY: MutableMapping[str, DatasetFactory] = {}


def register_dataset(
    name: str | None = None,
    factory: DatasetFactory | None = None,
) -> Callable[[DatasetFactory], DatasetFactory] | None:
    """Register a dataset factory, directly or as a decorator::

        @register_dataset("mnist")
        def build_mnist(**kwargs):
            ...
    """

    def _decorator(func: DatasetFactory) -> DatasetFactory:
        _REGISTRY[str(name or func.__name__)] = func
        return func

    if factory is not None:
        return _decorator(factory)
    if name is None:
        raise TypeError("register_dataset requires a name when used without a decorator")
    return _decorator


def get_dataset(
    dataset: str,
    /,
    *,
    offline: bool = True,
    cache_dir: str | Path | None = None,
    **options: Any,
) -> DatasetSpec:
    """Return the :class:`DatasetSpec` for ``dataset``."""

    if dataset not in _REGISTRY:
        raise KeyError(f"Unknown dataset: {dataset}")
    spec = _REGISTRY[dataset](offline=offline, cache_dir=cache_dir, **options)
    _validate_spec(spec)
    return spec


def available_datasets() -> Iterable[str]:
    return sorted(_REGISTRY)


def _validate_spec(spec: DatasetSpec) -> None:
    if spec.data_spec.num_classes < 2:
        raise ValueError("Classification datasets need at least two classes")
    if not isinstance(spec.splits, dict):
        raise TypeError("DatasetSpec.splits must be a mapping")
    for split, count in spec.splits.items():
        if split not in SPLITS:
            raise ValueError(f"Unknown split {split!r}")
        if count < 0:
            raise ValueError(f"Split {split!r} has negative sample count {count}")


__all__ = [
    "DataSpec",
    "DatasetSpec",
    "SPLITS",
    "available_datasets",
    "get_dataset",
    "register_dataset",
]
