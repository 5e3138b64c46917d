import json

import pytest

from digitnets.reporting import CsvSink, JsonlSink, PlotAdapter, write_manifest, write_summary


def test_sinks_write_one_record_per_epoch(tmp_path):
    jsonl = JsonlSink(tmp_path / "metrics.jsonl", seed=3, sha="abc")
    csv_sink = CsvSink(tmp_path / "metrics.csv")
    for epoch, acc in enumerate([0.5, 0.75], start=1):
        metrics = {"accuracy": acc, "correct": acc * 4, "total": 4.0}
        jsonl.on_epoch(epoch, metrics)
        csv_sink.on_epoch(epoch, metrics)
    records = [json.loads(line) for line in (tmp_path / "metrics.jsonl").read_text().splitlines()]
    assert [r["epoch"] for r in records] == [1, 2]
    assert records[1]["accuracy"] == 0.75
    assert records[0]["sha"] == "abc"
    rows = (tmp_path / "metrics.csv").read_text().splitlines()
    assert rows[0] == "accuracy,correct,epoch,split,total"
    assert len(rows) == 3


def test_summary_reports_best_epoch(tmp_path):
    jsonl = JsonlSink(tmp_path / "metrics.jsonl", sha="abc")
    for epoch, acc in enumerate([0.2, 0.9, 0.6], start=1):
        jsonl.on_epoch(epoch, {"accuracy": acc})
    summary = json.loads(open(write_summary(jsonl.path, tmp_path / "summary.json")).read())
    assert summary["records"] == 3
    assert summary["best_epoch"] == 2
    assert summary["metrics"]["accuracy"]["last"] == pytest.approx(0.6)


def test_summary_of_missing_log(tmp_path):
    summary = json.loads(open(write_summary(tmp_path / "none.jsonl", tmp_path / "s.json")).read())
    assert summary == {"version": 1, "records": 0, "best_epoch": None, "metrics": {}}


def test_manifest_captures_config(tmp_path):
    path = write_manifest(
        tmp_path / "manifest.json",
        config={"architecture": "ffnn"},
        dataset_provenance={"mode": "offline"},
    )
    manifest = json.loads(open(path).read())
    assert manifest["config"] == {"architecture": "ffnn"}
    assert manifest["dataset"]["mode"] == "offline"
    assert "git_sha" in manifest


def test_plot_adapter_disabled_writes_nothing(tmp_path):
    adapter = PlotAdapter(tmp_path / "plots")
    adapter.on_epoch(1, {"accuracy": 0.5})
    assert adapter.close() is None
    assert not (tmp_path / "plots").exists()


def test_plot_adapter_renders_accuracy(tmp_path):
    pytest.importorskip("matplotlib")
    adapter = PlotAdapter(tmp_path, enable_plots=True)
    adapter.on_epoch(1, {"accuracy": 0.5})
    adapter.on_epoch(2, {"accuracy": 0.8})
    path = adapter.close()
    assert path is not None and path.exists()
