"""Command line entry point for digitnets training, evaluation and prediction."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Iterable

from digitnets.core.errors import InvalidModelError, ShapeError
from digitnets.core.matrix import matrix_from_array, vector_from_array
from digitnets.data.utils import offline_from_env
from digitnets.nn import CNN, load_model
from digitnets.training import pipelines
from digitnets.training.metrics import argmax


def _format_result(result) -> str:
    payload = {
        "epochs": result.epochs,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
    }
    if result.summary_path:
        payload["summary"] = result.summary_path
    if result.model_path:
        payload["model"] = result.model_path
    if result.evaluation is not None:
        payload["correct"] = result.evaluation.correct
        payload["total"] = result.evaluation.total
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="ffnn-smoke",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument("--mode", choices=pipelines.MODES, help="Train a network or evaluate a saved one")
    parser.add_argument("--architecture", choices=pipelines.ARCHITECTURES, help="Network family")
    parser.add_argument("--model", type=Path, help="Saved model document to load")
    parser.add_argument("--export", type=Path, help="Where to write the trained model")
    parser.add_argument("--epochs", type=int, help="Override the number of epochs")
    parser.add_argument("--seed", type=int, help="Seed used for initialization and shuffling")
    parser.add_argument(
        "--standardize",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Standardize FFNN inputs with training-set mean/std",
    )
    parser.add_argument(
        "--offline",
        action=argparse.BooleanOptionalAction,
        default=offline_from_env(),
        help="Use the bundled offline fixture instead of downloading (env DIGITNETS_DATA_OFFLINE)",
    )
    parser.add_argument("--enable-plots", action="store_true", help="Write accuracy.png")
    parser.add_argument("--list-presets", action="store_true", help="List available presets and exit")
    parser.add_argument("--dump-config", type=Path, help="Dump the resolved config to a JSON file")
    parser.add_argument(
        "--predict",
        type=Path,
        help="JSON file holding one image as 784 pixel values; requires --model",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level")
    return parser.parse_args(argv)


def _load_override(path: Path) -> dict:
    text = path.read_text()
    if path.suffix in {".yml", ".yaml"}:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to load YAML configs") from exc
        return yaml.safe_load(text) or {}
    return json.loads(text)


def _merge(base: dict, override: dict) -> dict:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def _predict(model_path: Path, image_path: Path) -> dict:
    network = load_model(model_path)
    pixels = [float(v) for v in json.loads(image_path.read_text())]
    if pixels and max(pixels) > 1.0:
        pixels = [v / 255.0 for v in pixels]
    if isinstance(network, CNN):
        inputs = matrix_from_array(pixels, *network.input_shape)
    else:
        inputs = vector_from_array(pixels)
        if network.normalization is not None:
            inputs = network.normalization.apply(inputs)
    output = network.predict(inputs)
    return {"output": output, "prediction": argmax(output)}


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    if args.predict:
        if not args.model:
            raise SystemExit("--predict requires --model")
        try:
            print(json.dumps(_predict(args.model, args.predict)))
        except (InvalidModelError, ShapeError) as exc:
            raise SystemExit(f"error: {exc}") from None
        return

    config = json.loads(json.dumps(pipelines.load_preset(args.preset)))

    if args.config:
        override = _load_override(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = _merge(config, override)

    if args.mode:
        config["mode"] = args.mode
    if args.architecture:
        config["architecture"] = args.architecture
    if args.model:
        config.setdefault("model", {})["path"] = str(args.model)
    if args.export:
        config.setdefault("model", {})["export"] = str(args.export)
    train_cfg = config.setdefault("train", {})
    if args.epochs is not None:
        train_cfg["epochs"] = int(args.epochs)
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
    if args.standardize is not None:
        train_cfg["standardize"] = bool(args.standardize)
    if args.enable_plots:
        train_cfg["enable_plots"] = True

    config["offline"] = bool(args.offline)
    os.environ["DIGITNETS_DATA_OFFLINE"] = "1" if args.offline else "0"

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    try:
        result = pipelines.run_pipeline(config)
    except (InvalidModelError, ShapeError) as exc:
        raise SystemExit(f"error: {exc}") from None
    print(_format_result(result))


if __name__ == "__main__":
    main()
