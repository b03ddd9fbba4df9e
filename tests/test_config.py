import pytest

from release_compass.core.config import DEFAULT_TIMELINE_WINDOW_DAYS, load_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("RELEASE_COMPASS_LOG_LEVEL", raising=False)
    monkeypatch.delenv("RELEASE_COMPASS_TEMPLATE_FILE", raising=False)
    monkeypatch.delenv("RELEASE_COMPASS_TIMELINE_WINDOW_DAYS", raising=False)

    s = load_settings()
    assert s.log_level == "WARNING"
    assert s.template_file is None
    assert s.timeline_window_days == DEFAULT_TIMELINE_WINDOW_DAYS


def test_env_overrides_defaults(monkeypatch):
    monkeypatch.setenv("RELEASE_COMPASS_LOG_LEVEL", "debug")
    monkeypatch.setenv("RELEASE_COMPASS_TEMPLATE_FILE", "examples/templates.yaml")
    monkeypatch.setenv("RELEASE_COMPASS_TIMELINE_WINDOW_DAYS", "90")

    s = load_settings()
    assert s.log_level == "DEBUG"
    assert s.template_file == "examples/templates.yaml"
    assert s.timeline_window_days == 90


def test_explicit_arguments_win(monkeypatch):
    monkeypatch.setenv("RELEASE_COMPASS_LOG_LEVEL", "debug")
    monkeypatch.setenv("RELEASE_COMPASS_TEMPLATE_FILE", "from-env.yaml")

    s = load_settings(log_level="error", template_file="from-cli.yaml")
    assert s.log_level == "ERROR"
    assert s.template_file == "from-cli.yaml"


def test_blank_env_is_ignored(monkeypatch):
    monkeypatch.setenv("RELEASE_COMPASS_TEMPLATE_FILE", "   ")
    assert load_settings().template_file is None


@pytest.mark.parametrize("raw", ["soon", "0", "-3"])
def test_bad_window_raises(monkeypatch, raw):
    monkeypatch.setenv("RELEASE_COMPASS_TIMELINE_WINDOW_DAYS", raw)
    with pytest.raises(ValueError, match="RELEASE_COMPASS_TIMELINE_WINDOW_DAYS"):
        load_settings()
