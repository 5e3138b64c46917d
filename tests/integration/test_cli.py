import json
from pathlib import Path

import pytest

from cli.main import main


@pytest.fixture(autouse=True)
def _workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DIGITNETS_DATA_OFFLINE", "1")
    monkeypatch.setenv("DIGITNETS_CACHE_DIR", str(tmp_path / "cache"))


def _small_config(path):
    path.write_text(
        json.dumps(
            {
                "data": {"options": {"num_train": 30, "num_val": 0, "num_test": 10}},
                "model": {"sizes": [784, 6, 10]},
            }
        )
    )
    return path


def test_cli_lists_presets(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--list-presets"])
    assert excinfo.value.code == 0
    assert "ffnn-smoke" in capsys.readouterr().out.split()


def test_cli_trains_then_predicts(tmp_path, capsys):
    config = _small_config(tmp_path / "small.json")
    main(["--preset", "ffnn-smoke", "--config", str(config), "--epochs", "1", "--export", "model.json"])
    run_dir = Path("runs/ffnn-smoke")
    assert (run_dir / "metrics.jsonl").exists()
    assert (run_dir / "manifest.json").exists()
    result = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert result["model"] == "model.json"
    assert result["total"] == 10

    image = tmp_path / "digit.json"
    image.write_text(json.dumps([0] * 392 + [255] * 392))
    main(["--model", "model.json", "--predict", str(image)])
    prediction = json.loads(capsys.readouterr().out.strip())
    assert len(prediction["output"]) == 10
    assert prediction["prediction"] in range(10)


def test_cli_evaluate_mode(tmp_path, capsys):
    config = _small_config(tmp_path / "small.json")
    main(["--config", str(config), "--epochs", "1", "--standardize", "--export", "std.json"])
    capsys.readouterr()
    main(["--config", str(config), "--mode", "evaluate", "--model", "std.json"])
    result = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert result["epochs"] == 0
    assert result["total"] == 10


def test_cli_dump_config(tmp_path):
    config = _small_config(tmp_path / "small.json")
    dump = tmp_path / "resolved" / "config.json"
    main(["--config", str(config), "--epochs", "1", "--seed", "5", "--dump-config", str(dump)])
    resolved = json.loads(dump.read_text())
    assert resolved["train"]["seed"] == 5
    assert resolved["model"]["sizes"] == [784, 6, 10]
    assert resolved["offline"] is True


def test_cli_rejects_invalid_model(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"type": "ffnn", "sizes": [784, 10]}))
    image = tmp_path / "digit.json"
    image.write_text(json.dumps([0.0] * 784))
    with pytest.raises(SystemExit) as excinfo:
        main(["--model", str(bad), "--predict", str(image)])
    assert "missing" in str(excinfo.value.code)


def test_cli_predict_requires_model(tmp_path):
    with pytest.raises(SystemExit):
        main(["--predict", str(tmp_path / "digit.json")])
