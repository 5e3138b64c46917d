"""Pipeline assembly for digit recognizer training and evaluation runs."""

from __future__ import annotations

import json
import logging
import random
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

from ..core.types import EpochReport, RunResult, Sample
from ..data import registry
from ..data.utils import to_samples
from ..nn.cnn import CNN
from ..nn.convolution import PoolConfig
from ..nn.ffnn import FFNN
from ..nn.serialization import load_model, save_model
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink
from ..reporting.plots import PlotAdapter
from ..reporting.summary import write_summary

logger = logging.getLogger(__name__)

MODES = ("train", "evaluate")
ARCHITECTURES = ("ffnn", "cnn")

_PRESETS: Dict[str, Mapping[str, object]] = {
    "ffnn-smoke": {
        "mode": "train",
        "architecture": "ffnn",
        "data": {
            "name": "mnist",
            "options": {"num_train": 200, "num_val": 50, "num_test": 100},
            "eval_split": "test",
        },
        "model": {
            "sizes": [784, 16, 10],
            "activation": "sigmoid",
            "cost": "quadratic",
        },
        "train": {
            "epochs": 2,
            "batch_size": 10,
            "lr": 3.0,
            "regularization": 0.0,
            "seed": 7,
            "standardize": False,
            "run_dir": "runs/ffnn-smoke",
            "enable_plots": False,
        },
    },
    "cnn-smoke": {
        "mode": "train",
        "architecture": "cnn",
        "data": {
            "name": "mnist",
            "options": {"num_train": 40, "num_val": 10, "num_test": 20},
            "eval_split": "test",
        },
        "model": {
            "kernel_count": 2,
            "kernel_size": 5,
            "pool": {"size": 2, "stride": 2, "mode": "max"},
            "hidden": [],
            "cost": "cross_entropy",
        },
        "train": {
            "epochs": 1,
            "batch_size": 1,
            "lr": 0.01,
            "seed": 3,
            "run_dir": "runs/cnn-smoke",
            "enable_plots": False,
        },
    },
    "ffnn-mnist": {
        "mode": "train",
        "architecture": "ffnn",
        "data": {
            "name": "mnist",
            "options": {"num_train": 50000, "num_val": 10000, "num_test": 10000},
            "eval_split": "test",
        },
        "model": {
            "sizes": [784, 30, 10],
            "activation": "sigmoid",
            "cost": "quadratic",
        },
        "train": {
            "epochs": 30,
            "batch_size": 10,
            "lr": 3.0,
            "regularization": 0.0,
            "seed": 1,
            "standardize": False,
            "run_dir": "runs/ffnn-mnist",
            "enable_plots": False,
        },
    },
    "cnn-mnist": {
        "mode": "train",
        "architecture": "cnn",
        "data": {
            "name": "mnist",
            "options": {"num_train": 50000, "num_val": 10000, "num_test": 10000},
            "eval_split": "test",
        },
        "model": {
            "kernel_count": 8,
            "kernel_size": 5,
            "pool": {"size": 2, "stride": 2, "mode": "max"},
            "hidden": [],
            "cost": "cross_entropy",
        },
        "train": {
            "epochs": 3,
            "batch_size": 1,
            "lr": 0.005,
            "seed": 1,
            "run_dir": "runs/cnn-mnist",
            "enable_plots": False,
        },
    },
}


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str) -> Mapping[str, object]:
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        raise KeyError(f"Unknown preset: {name}") from exc


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    """Train or evaluate a network as described by ``config``.

    ``config["mode"]`` selects ``"train"`` (default) or ``"evaluate"``;
    ``config["model"]["path"]`` loads an existing model document instead of
    building a fresh network, which ``"evaluate"`` requires.
    """

    mode = str(config.get("mode", "train"))
    if mode not in MODES:
        raise ValueError(f"Unknown mode {mode!r}; expected one of {MODES}")
    architecture = str(config.get("architecture", "ffnn"))
    if architecture not in ARCHITECTURES:
        raise ValueError(f"Unknown architecture {architecture!r}; expected one of {ARCHITECTURES}")

    data_cfg = dict(config.get("data", {}))
    model_cfg = dict(config.get("model", {}))
    train_cfg = dict(config.get("train", {}))
    offline = bool(config.get("offline", True))
    seed = int(train_cfg.get("seed", 0))

    dataset = registry.get_dataset(
        str(data_cfg.get("name", "mnist")),
        offline=offline,
        cache_dir=train_cfg.get("cache_dir"),
        **dict(data_cfg.get("options", {})),
    )
    layout = "grid" if architecture == "cnn" else "vector"
    eval_split = str(data_cfg.get("eval_split", "test"))
    training_set = _samples(dataset, "train", layout) if mode == "train" else []
    eval_set = _samples(dataset, eval_split, layout)

    network = _build_network(architecture, model_cfg, dataset.data_spec, seed, mode)
    training_set, eval_set = _standardize(network, training_set, eval_set, train_cfg, mode)

    run_dir = _resolve_run_dir(train_cfg, dataset.name, architecture)
    run_dir.mkdir(parents=True, exist_ok=True)

    epochs = int(train_cfg.get("epochs", 1)) if mode == "train" else 0
    _print_startup_summary(
        mode=mode,
        dataset_name=dataset.name,
        architecture=architecture,
        network=network,
        train_size=len(training_set),
        eval_size=len(eval_set),
        epochs=epochs,
    )

    jsonl = JsonlSink(run_dir / "metrics.jsonl", split=eval_split, seed=seed)
    csv_sink = CsvSink(run_dir / "metrics.csv", split=eval_split)
    plots = PlotAdapter(run_dir, enable_plots=bool(train_cfg.get("enable_plots", False)))
    callbacks = [jsonl, csv_sink, plots]

    history: List[EpochReport] = []
    if mode == "train":
        history = _train(network, architecture, training_set, eval_set, train_cfg, seed, callbacks)
    evaluation = network.evaluate(eval_set)
    if mode == "evaluate":
        jsonl.on_epoch(0, evaluation.as_metrics())
        csv_sink.on_epoch(0, evaluation.as_metrics())
    logger.info(
        "%s accuracy on %s split: %d/%d",
        architecture.upper(),
        eval_split,
        evaluation.correct,
        evaluation.total,
    )
    plots.close()

    (run_dir / "evaluation.json").write_text(
        json.dumps({"split": eval_split, **evaluation.as_metrics()}, indent=2, sort_keys=True)
    )

    model_path = ""
    if mode == "train":
        export = model_cfg.get("export") or run_dir / "model.json"
        model_path = save_model(network, export)

    manifest = write_manifest(
        run_dir / "manifest.json",
        config=json.loads(json.dumps(config, default=str)),
        dataset_provenance=dataset.provenance,
        model={"architecture": architecture, "repr": repr(network), "path": model_path},
    )
    summary_path = write_summary(jsonl.path, run_dir / "summary.json")

    return RunResult(
        epochs=epochs,
        metrics_path=str(jsonl.path),
        manifest_path=manifest,
        summary_path=summary_path,
        model_path=model_path,
        evaluation=evaluation,
        history=history,
    )


def _samples(dataset: registry.DatasetSpec, split: str, layout: str) -> List[Sample]:
    images, labels = dataset.arrays(split)
    spec = dataset.data_spec
    return to_samples(
        images,
        labels,
        layout=layout,
        input_shape=spec.input_shape,
        num_classes=spec.num_classes,
        max_value=spec.max_value,
    )


def _build_network(
    architecture: str,
    model_cfg: Mapping[str, object],
    data_spec: registry.DataSpec,
    seed: int,
    mode: str,
) -> FFNN | CNN:
    path = model_cfg.get("path")
    if path:
        network = load_model(path)
        expected = FFNN if architecture == "ffnn" else CNN
        if not isinstance(network, expected):
            raise ValueError(f"Model at {path} is not a {architecture.upper()} model")
        return network
    if mode == "evaluate":
        raise ValueError("Evaluate mode requires model.path pointing to a saved model")

    if architecture == "ffnn":
        sizes = list(model_cfg.get("sizes", [data_spec.d_in, 30, data_spec.num_classes]))
        return FFNN(
            sizes,
            activation=str(model_cfg.get("activation", "sigmoid")),
            output_activation=model_cfg.get("output_activation"),
            cost=str(model_cfg.get("cost", "quadratic")),
            seed=seed,
        )

    pool_cfg = dict(model_cfg.get("pool", {}))
    return CNN(
        input_shape=data_spec.input_shape,
        kernel_count=int(model_cfg.get("kernel_count", 8)),
        kernel_size=int(model_cfg.get("kernel_size", 5)),
        stride=int(model_cfg.get("stride", 1)),
        padding=int(model_cfg.get("padding", 0)),
        conv_activation=str(model_cfg.get("conv_activation", "relu")),
        pool=PoolConfig(**pool_cfg),
        hidden=[int(h) for h in model_cfg.get("hidden", [])],
        num_classes=data_spec.num_classes,
        activation=str(model_cfg.get("activation", "relu")),
        output_activation=str(model_cfg.get("output_activation", "softmax")),
        cost=str(model_cfg.get("cost", "cross_entropy")),
        seed=seed,
    )


def _standardize(
    network: FFNN | CNN,
    training_set: List[Sample],
    eval_set: List[Sample],
    train_cfg: Mapping[str, object],
    mode: str,
) -> Tuple[List[Sample], List[Sample]]:
    if not isinstance(network, FFNN):
        if train_cfg.get("standardize"):
            logger.warning("Standardization is only supported for FFNN models; ignoring")
        return training_set, eval_set
    if mode == "train" and train_cfg.get("standardize") and network.normalization is None:
        network.initialize_normalization(training_set)
    stats = network.normalization
    if stats is None:
        return training_set, eval_set
    return stats.apply_all(training_set), stats.apply_all(eval_set)


def _train(
    network: FFNN | CNN,
    architecture: str,
    training_set: Sequence[Sample],
    eval_set: Sequence[Sample],
    train_cfg: Mapping[str, object],
    seed: int,
    callbacks: Sequence[object],
) -> List[EpochReport]:
    rng = random.Random(seed)
    epochs = int(train_cfg.get("epochs", 1))
    batch_size = int(train_cfg.get("batch_size", 10 if architecture == "ffnn" else 1))
    lr = float(train_cfg.get("lr", 3.0 if architecture == "ffnn" else 0.005))
    if isinstance(network, FFNN):
        return network.stochastic_gradient_descent(
            training_set,
            epochs,
            batch_size,
            lr,
            float(train_cfg.get("regularization", 0.0)),
            eval_set,
            rng=rng,
            callbacks=callbacks,
        )
    return network.train(
        training_set,
        epochs,
        lr,
        eval_set,
        mini_batch_size=batch_size,
        rng=rng,
        callbacks=callbacks,
    )


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str, architecture: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset / architecture


def _print_startup_summary(
    *,
    mode: str,
    dataset_name: str,
    architecture: str,
    network: FFNN | CNN,
    train_size: int,
    eval_size: int,
    epochs: int,
) -> None:
    if isinstance(network, FFNN):
        layout = f"{network.sizes}"
        params = sum(layer.weights.rows * layer.weights.cols + layer.biases.rows for layer in network.layers)
    else:
        layout = f"{network.kernel_count}x{network.kernel_size}x{network.kernel_size} -> {network.dense_sizes}"
        params = network.kernel_count * (network.kernel_size**2 + 1) + sum(
            layer.weights.rows * layer.weights.cols + layer.biases.rows for layer in network.layers
        )
    print("=== digitnets run ===")
    print(f"Mode          : {mode}")
    print(f"Dataset       : {dataset_name}")
    print(f"Architecture  : {architecture}")
    print(f"Layout        : {layout}")
    print(f"Cost          : {network.cost.name}")
    print(f"Train samples : {train_size}")
    print(f"Eval samples  : {eval_size}")
    print(f"Epochs        : {epochs}")
    print(f"Parameters    : {params}")
    print("=====================")


__all__ = ["ARCHITECTURES", "MODES", "load_preset", "presets", "run_pipeline"]
