import json

from typer.testing import CliRunner

from release_compass.cli import app


runner = CliRunner()


def test_cli_lint_success():
    r = runner.invoke(app, ["lint", "examples/basic-project.yaml"])
    assert r.exit_code == 0
    assert "OK: lint passed" in r.stdout


def test_cli_lint_cycle():
    r = runner.invoke(app, ["lint", "examples/cyclic-project.yaml"])
    assert r.exit_code == 2
    assert "L_CYCLE_DETECTED" in r.output


def test_cli_lint_json_sources():
    r = runner.invoke(app, ["lint", "examples/out-of-order.yaml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    items = {e["code"]: e["source"] for e in payload["errors"]}
    assert items["L_DATE_ORDER"] == "lint"
