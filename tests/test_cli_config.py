from typer.testing import CliRunner

from release_compass.cli import app


runner = CliRunner()


def test_bad_timeline_window_is_reported_not_raised():
    r = runner.invoke(
        app,
        ["summary", "examples/basic-project.yaml"],
        env={"RELEASE_COMPASS_TIMELINE_WINDOW_DAYS": "abc"},
    )
    assert r.exit_code == 2
    assert r.exception is None or isinstance(r.exception, SystemExit)
    assert "settings: E_CONFIG_INVALID: RELEASE_COMPASS_TIMELINE_WINDOW_DAYS must be an integer" in r.output


def test_negative_timeline_window_is_reported():
    r = runner.invoke(
        app,
        ["validate", "examples/basic-project.yaml"],
        env={"RELEASE_COMPASS_TIMELINE_WINDOW_DAYS": "-5"},
    )
    assert r.exit_code == 2
    assert "E_CONFIG_INVALID" in r.output


def test_unknown_log_level_is_reported():
    r = runner.invoke(app, ["--log-level", "chatty", "validate", "examples/basic-project.yaml"])
    assert r.exit_code == 2
    assert "log_level: E_CONFIG_INVALID: unknown log level: CHATTY" in r.output
