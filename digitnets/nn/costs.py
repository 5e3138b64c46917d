"""Cost registry shared by the dense stacks of both networks."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable

from ..core.activations import Activation
from ..core.matrix import Matrix

ValueFn = Callable[[Matrix, Matrix, Activation], float]
DeltaFn = Callable[[Matrix, Matrix, Matrix, Activation], Matrix]

_TINY = 1e-300


@dataclass(frozen=True)
class Cost:
    """Cost wrapper returning the scalar value and the output-layer error."""

    name: str
    value_fn: ValueFn
    delta_fn: DeltaFn
    supported_outputs: frozenset[str] | None = None

    def value(self, output: Matrix, target: Matrix, activation: Activation) -> float:
        return self.value_fn(output, target, activation)

    def delta(self, z: Matrix, output: Matrix, target: Matrix, activation: Activation) -> Matrix:
        """Gradient of the cost with respect to the output pre-activation ``z``."""

        return self.delta_fn(z, output, target, activation)

    def check_output(self, activation: Activation) -> None:
        if self.supported_outputs is not None and activation.name not in self.supported_outputs:
            allowed = ", ".join(sorted(self.supported_outputs))
            raise ValueError(
                f"Cost {self.name!r} requires one of these output activations: {allowed}; "
                f"got {activation.name!r}"
            )


class CostRegistry:
    """Central registry for cost functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Cost] = {}

    def register(self, cost: Cost) -> None:
        self._registry[cost.name] = cost

    def get(self, name: str) -> Cost:
        if name not in self._registry:
            available = ", ".join(sorted(self._registry))
            raise KeyError(f"Unknown cost {name!r}. Available costs: {available}")
        return self._registry[name]

    def names(self) -> Iterable[str]:
        return sorted(self._registry)


REGISTRY = CostRegistry()


def _quadratic_value(output: Matrix, target: Matrix, activation: Activation) -> float:
    return 0.5 * math.fsum((a - y) ** 2 for a, y in zip(output.data, target.data))


def _quadratic_delta(z: Matrix, output: Matrix, target: Matrix, activation: Activation) -> Matrix:
    return activation.backward(z, output, output.sub(target))


def _cross_entropy_value(output: Matrix, target: Matrix, activation: Activation) -> float:
    if activation.name == "softmax":
        return -math.fsum(y * math.log(max(a, _TINY)) for a, y in zip(output.data, target.data))
    return -math.fsum(
        y * math.log(max(a, _TINY)) + (1.0 - y) * math.log(max(1.0 - a, _TINY))
        for a, y in zip(output.data, target.data)
    )


def _cross_entropy_delta(
    z: Matrix, output: Matrix, target: Matrix, activation: Activation
) -> Matrix:
    # Sigmoid/binary and softmax/categorical cross entropy share dC/dz = a - y.
    return output.sub(target)


REGISTRY.register(Cost("quadratic", _quadratic_value, _quadratic_delta))
REGISTRY.register(
    Cost(
        "cross_entropy",
        _cross_entropy_value,
        _cross_entropy_delta,
        supported_outputs=frozenset({"sigmoid", "softmax"}),
    )
)


def get_cost(name: str) -> Cost:
    return REGISTRY.get(name)


__all__ = ["Cost", "CostRegistry", "REGISTRY", "get_cost"]
