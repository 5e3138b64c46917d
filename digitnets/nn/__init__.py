"""Network architectures, layers, costs and the model codec."""

from .cnn import CNN, CNNGradients
from .convolution import ConvKernel, PoolConfig
from .ffnn import FFNN
from .layers import DenseLayer
from .serialization import from_document, load_model, save_model, to_document

__all__ = [
    "CNN",
    "CNNGradients",
    "ConvKernel",
    "DenseLayer",
    "FFNN",
    "PoolConfig",
    "from_document",
    "load_model",
    "save_model",
    "to_document",
]
