"""digitnets public API."""

from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.errors import InvalidModelError, ShapeError
from .core.matrix import Matrix
from .core.normalization import Normalization
from .nn import CNN, FFNN, load_model, save_model
from .training.background import submit_pipeline
from .training.pipelines import load_preset, presets, run_pipeline

__all__ = [
    "CNN",
    "FFNN",
    "InvalidModelError",
    "Matrix",
    "Normalization",
    "ShapeError",
    "activations",
    "types",
    "load_model",
    "save_model",
    "load_preset",
    "presets",
    "run_pipeline",
    "submit_pipeline",
]
