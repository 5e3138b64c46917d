"""Model documents: strict (de)serialization of FFNN and CNN parameters.

Documents are plain JSON-compatible mappings. Loading rejects missing and
unknown fields, non-finite numbers and shapes that disagree with the declared
architecture, raising :class:`InvalidModelError` with the offending path.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from ..core.activations import available_activations
from ..core.errors import InvalidModelError, ShapeError
from ..core.matrix import Matrix
from ..core.normalization import EPSILON, Normalization
from .cnn import CNN
from .convolution import POOL_MODES, ConvKernel, PoolConfig
from .costs import REGISTRY as COST_REGISTRY
from .ffnn import FFNN
from .layers import DenseLayer

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

Network = Union[FFNN, CNN]

_FFNN_REQUIRED = frozenset({"type", "sizes", "layers"})
_FFNN_OPTIONAL = frozenset({"version", "activation", "output_activation", "cost", "normalization"})
_LAYER_KEYS = frozenset({"weights", "biases"})
_NORMALIZATION_REQUIRED = frozenset({"mean", "std"})
_NORMALIZATION_OPTIONAL = frozenset({"epsilon"})
_CNN_REQUIRED = frozenset({"type", "input_shape", "conv", "pool", "dense"})
_CNN_OPTIONAL = frozenset({"version", "cost"})
_CONV_REQUIRED = frozenset({"kernel_count", "kernel_size", "kernels"})
_CONV_OPTIONAL = frozenset({"stride", "padding", "activation"})
_KERNEL_REQUIRED = frozenset({"weights"})
_KERNEL_OPTIONAL = frozenset({"bias"})
_POOL_REQUIRED = frozenset({"size"})
_POOL_OPTIONAL = frozenset({"stride", "mode"})
_DENSE_REQUIRED = frozenset({"sizes", "layers"})
_DENSE_OPTIONAL = frozenset({"activation", "output_activation"})


# ----------------------------------------------------------------------
# Field validation


def _check_keys(
    obj: Any, required: frozenset, optional: frozenset, path: str
) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise InvalidModelError(f"{path} must be an object, got {type(obj).__name__}")
    keys = set(obj)
    missing = required - keys
    if missing:
        raise InvalidModelError(f"{path} is missing required fields: {', '.join(sorted(missing))}")
    unknown = keys - required - optional
    if unknown:
        raise InvalidModelError(f"{path} has unknown fields: {', '.join(sorted(unknown))}")
    return obj


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidModelError(f"{path} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidModelError(f"{path} must be finite, got {value!r}")
    return value


def _int(value: Any, path: str, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidModelError(f"{path} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidModelError(f"{path} must be >= {minimum}, got {value}")
    return value


def _int_list(value: Any, path: str, min_length: int) -> List[int]:
    if not isinstance(value, list) or len(value) < min_length:
        raise InvalidModelError(f"{path} must be a list of at least {min_length} integers")
    return [_int(item, f"{path}[{idx}]") for idx, item in enumerate(value)]


def _name(value: Any, allowed: Sequence[str], path: str) -> str:
    if value not in allowed:
        raise InvalidModelError(f"{path} must be one of {', '.join(allowed)}; got {value!r}")
    return str(value)


def _matrix(value: Any, rows: int, cols: int, path: str) -> Matrix:
    if not isinstance(value, list) or len(value) != rows:
        raise InvalidModelError(f"{path} must be a list of {rows} rows")
    flat: List[float] = []
    for r, row in enumerate(value):
        if not isinstance(row, list) or len(row) != cols:
            raise InvalidModelError(f"{path}[{r}] must be a list of {cols} numbers")
        flat.extend(_number(item, f"{path}[{r}][{c}]") for c, item in enumerate(row))
    return Matrix(rows, cols, flat)


def _vector(value: Any, length: int, path: str) -> Matrix:
    if not isinstance(value, list) or len(value) != length:
        raise InvalidModelError(f"{path} must be a list of {length} numbers")
    return Matrix(length, 1, [_number(item, f"{path}[{idx}]") for idx, item in enumerate(value)])


def _version(document: Mapping[str, Any]) -> None:
    version = document.get("version", FORMAT_VERSION)
    if version != FORMAT_VERSION:
        raise InvalidModelError(f"Unsupported model version {version!r}; expected {FORMAT_VERSION}")


def _type(document: Any, expected: str) -> None:
    if not isinstance(document, Mapping):
        raise InvalidModelError(f"model must be an object, got {type(document).__name__}")
    if document.get("type") != expected:
        raise InvalidModelError(f"type must be {expected!r}, got {document.get('type')!r}")


def _dense_layers(value: Any, sizes: Sequence[int], path: str) -> List[DenseLayer]:
    if not isinstance(value, list) or len(value) != len(sizes) - 1:
        raise InvalidModelError(f"{path} must list {len(sizes) - 1} layers for sizes {list(sizes)}")
    layers: List[DenseLayer] = []
    for idx, (layer, n_in, n_out) in enumerate(zip(value, sizes[:-1], sizes[1:])):
        where = f"{path}[{idx}]"
        _check_keys(layer, _LAYER_KEYS, frozenset(), where)
        layers.append(
            DenseLayer(
                weights=_matrix(layer["weights"], n_out, n_in, f"{where}.weights"),
                biases=_vector(layer["biases"], n_out, f"{where}.biases"),
            )
        )
    return layers


def _dense_to_document(layers: Sequence[DenseLayer]) -> List[Dict[str, Any]]:
    return [
        {"weights": layer.weights.to_rows(), "biases": layer.biases.to_list()} for layer in layers
    ]


# ----------------------------------------------------------------------
# FFNN


def ffnn_to_document(network: FFNN) -> Dict[str, Any]:
    normalization = None
    if network.normalization is not None:
        normalization = {
            "mean": network.normalization.mean.to_list(),
            "std": network.normalization.std.to_list(),
            "epsilon": network.normalization.epsilon,
        }
    return {
        "type": "ffnn",
        "version": FORMAT_VERSION,
        "sizes": network.sizes,
        "activation": network.activation.name,
        "output_activation": network.output_activation.name,
        "cost": network.cost.name,
        "layers": _dense_to_document(network.layers),
        "normalization": normalization,
    }


def ffnn_from_document(document: Mapping[str, Any]) -> FFNN:
    _type(document, "ffnn")
    _check_keys(document, _FFNN_REQUIRED, _FFNN_OPTIONAL, "model")
    _version(document)
    activations = available_activations()
    sizes = _int_list(document["sizes"], "sizes", 2)
    activation = _name(document.get("activation", "sigmoid"), activations, "activation")
    output_activation = _name(
        document.get("output_activation", activation), activations, "output_activation"
    )
    cost = _name(document.get("cost", "quadratic"), COST_REGISTRY.names(), "cost")
    layers = _dense_layers(document["layers"], sizes, "layers")

    normalization = None
    raw_norm = document.get("normalization")
    if raw_norm is not None:
        _check_keys(raw_norm, _NORMALIZATION_REQUIRED, _NORMALIZATION_OPTIONAL, "normalization")
        epsilon = _number(raw_norm.get("epsilon", EPSILON), "normalization.epsilon")
        normalization = Normalization(
            mean=_vector(raw_norm["mean"], sizes[0], "normalization.mean"),
            std=_vector(raw_norm["std"], sizes[0], "normalization.std"),
            epsilon=epsilon,
        )
    try:
        return FFNN(
            sizes,
            activation=activation,
            output_activation=output_activation,
            cost=cost,
            layers=layers,
            normalization=normalization,
        )
    except (ShapeError, ValueError, KeyError) as exc:
        raise InvalidModelError(f"Inconsistent FFNN model: {exc}") from exc


# ----------------------------------------------------------------------
# CNN


def cnn_to_document(network: CNN) -> Dict[str, Any]:
    return {
        "type": "cnn",
        "version": FORMAT_VERSION,
        "input_shape": list(network.input_shape),
        "conv": {
            "kernel_count": network.kernel_count,
            "kernel_size": network.kernel_size,
            "stride": network.stride,
            "padding": network.padding,
            "activation": network.conv_activation.name,
            "kernels": [
                {"weights": kernel.weights.to_rows(), "bias": kernel.bias}
                for kernel in network.kernels
            ],
        },
        "pool": {
            "size": network.pool.size,
            "stride": network.pool.stride,
            "mode": network.pool.mode,
        },
        "dense": {
            "sizes": network.dense_sizes,
            "activation": network.activation.name,
            "output_activation": network.output_activation.name,
            "layers": _dense_to_document(network.layers),
        },
        "cost": network.cost.name,
    }


def cnn_from_document(document: Mapping[str, Any]) -> CNN:
    _type(document, "cnn")
    _check_keys(document, _CNN_REQUIRED, _CNN_OPTIONAL, "model")
    _version(document)
    activations = available_activations()

    input_shape = _int_list(document["input_shape"], "input_shape", 2)
    if len(input_shape) != 2:
        raise InvalidModelError("input_shape must list exactly two dimensions")

    conv = _check_keys(document["conv"], _CONV_REQUIRED, _CONV_OPTIONAL, "conv")
    kernel_count = _int(conv["kernel_count"], "conv.kernel_count")
    kernel_size = _int(conv["kernel_size"], "conv.kernel_size")
    stride = _int(conv.get("stride", 1), "conv.stride")
    padding = _int(conv.get("padding", 0), "conv.padding", minimum=0)
    conv_activation = _name(conv.get("activation", "relu"), activations, "conv.activation")
    raw_kernels = conv["kernels"]
    if not isinstance(raw_kernels, list) or len(raw_kernels) != kernel_count:
        raise InvalidModelError(f"conv.kernels must list {kernel_count} kernels")
    kernels: List[ConvKernel] = []
    for idx, raw in enumerate(raw_kernels):
        where = f"conv.kernels[{idx}]"
        _check_keys(raw, _KERNEL_REQUIRED, _KERNEL_OPTIONAL, where)
        kernels.append(
            ConvKernel(
                weights=_matrix(raw["weights"], kernel_size, kernel_size, f"{where}.weights"),
                bias=_number(raw.get("bias", 0.0), f"{where}.bias"),
            )
        )

    raw_pool = _check_keys(document["pool"], _POOL_REQUIRED, _POOL_OPTIONAL, "pool")
    pool_size = _int(raw_pool["size"], "pool.size")
    pool = PoolConfig(
        size=pool_size,
        stride=_int(raw_pool.get("stride", pool_size), "pool.stride"),
        mode=_name(raw_pool.get("mode", "max"), POOL_MODES, "pool.mode"),
    )

    dense = _check_keys(document["dense"], _DENSE_REQUIRED, _DENSE_OPTIONAL, "dense")
    dense_sizes = _int_list(dense["sizes"], "dense.sizes", 2)
    activation = _name(dense.get("activation", "relu"), activations, "dense.activation")
    output_activation = _name(
        dense.get("output_activation", "softmax"), activations, "dense.output_activation"
    )
    layers = _dense_layers(dense["layers"], dense_sizes, "dense.layers")
    cost = _name(document.get("cost", "cross_entropy"), COST_REGISTRY.names(), "cost")

    try:
        return CNN(
            input_shape=(input_shape[0], input_shape[1]),
            kernel_count=kernel_count,
            kernel_size=kernel_size,
            stride=stride,
            padding=padding,
            conv_activation=conv_activation,
            pool=pool,
            hidden=dense_sizes[1:-1],
            num_classes=dense_sizes[-1],
            activation=activation,
            output_activation=output_activation,
            cost=cost,
            kernels=kernels,
            layers=layers,
        )
    except (ShapeError, ValueError, KeyError) as exc:
        raise InvalidModelError(f"Inconsistent CNN model: {exc}") from exc


# ----------------------------------------------------------------------
# Dispatch and files


def to_document(network: Network) -> Dict[str, Any]:
    if isinstance(network, FFNN):
        return ffnn_to_document(network)
    if isinstance(network, CNN):
        return cnn_to_document(network)
    raise TypeError(f"Cannot serialize {type(network).__name__}")


def from_document(document: Mapping[str, Any]) -> Network:
    kind = document.get("type") if isinstance(document, Mapping) else None
    if kind == "ffnn":
        return ffnn_from_document(document)
    if kind == "cnn":
        return cnn_from_document(document)
    raise InvalidModelError(f"type must be 'ffnn' or 'cnn', got {kind!r}")


def save_model(network: Network, path: str | Path) -> str:
    """Write ``network`` as an indented JSON document."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_document(network), indent=2))
    logger.info("Saved %s model to %s", type(network).__name__, path)
    return str(path)


def read_document(path: str | Path) -> Mapping[str, Any]:
    path = Path(path)
    text = path.read_text()
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML models") from exc
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidModelError(f"{path} is not a valid model document: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidModelError(f"{path} is not a valid model document: {exc}") from exc


def load_model(path: str | Path) -> Network:
    """Load an FFNN or CNN from a JSON (or YAML) model file."""

    network = from_document(read_document(path))
    logger.info("Loaded %s model from %s", type(network).__name__, path)
    return network


__all__ = [
    "FORMAT_VERSION",
    "cnn_from_document",
    "cnn_to_document",
    "ffnn_from_document",
    "ffnn_to_document",
    "from_document",
    "load_model",
    "read_document",
    "save_model",
    "to_document",
]
