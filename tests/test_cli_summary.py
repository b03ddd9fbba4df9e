import json

from typer.testing import CliRunner

from release_compass.cli import app


runner = CliRunner()


def test_summary_text():
    r = runner.invoke(app, ["summary", "examples/basic-project.yaml"])
    assert r.exit_code == 0, r.output
    assert "Total budget: 1,500.00" in r.stdout
    assert "Actual cost: 720.00" in r.stdout
    assert "Structural critical path: REC -> MIX -> MAS -> REL" in r.stdout
    assert "Timeline compression: 10" in r.stdout
    assert "Budget: Budget is appropriate for single project." in r.stdout


def test_summary_json():
    r = runner.invoke(app, ["summary", "examples/basic-project.yaml", "--format", "json"])
    assert r.exit_code == 0, r.output
    payload = json.loads(r.stdout)
    assert payload["command"] == "summary"
    assert payload["financial_summary"]["total_budget"] == 1500
    assert payload["structural_critical_path"] == ["REC", "MIX", "MAS", "REL"]
    assert payload["compression_impact"]["level"] == "optimal"
    assert payload["budget_check"]["is_valid"] is True
    assert payload["timeline_start"] < payload["timeline_end"]


def test_summary_rejects_invalid_project():
    r = runner.invoke(app, ["summary", "examples/cyclic-project.yaml"])
    assert r.exit_code == 2
    assert "E_DEPENDENCY_CYCLE" in r.output


def test_critical_path_lists_chain_earliest_first():
    r = runner.invoke(app, ["critical-path", "examples/basic-project.yaml"])
    assert r.exit_code == 0, r.output
    ids = [line.split()[1] for line in r.stdout.strip().splitlines()]
    assert ids == ["REC", "MIX", "MAS", "REL"]
    assert r.stdout.startswith("2026-12-31T00:00:00Z  REC  Recording")
