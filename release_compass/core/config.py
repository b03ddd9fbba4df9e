from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


ENV_LOG_LEVEL = "RELEASE_COMPASS_LOG_LEVEL"
ENV_TEMPLATE_FILE = "RELEASE_COMPASS_TEMPLATE_FILE"
ENV_TIMELINE_WINDOW_DAYS = "RELEASE_COMPASS_TIMELINE_WINDOW_DAYS"

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_TIMELINE_WINDOW_DAYS = 180


@dataclass(frozen=True)
class Settings:
    log_level: str = DEFAULT_LOG_LEVEL
    template_file: Optional[str] = None
    timeline_window_days: int = DEFAULT_TIMELINE_WINDOW_DAYS


def load_settings(
    *,
    log_level: Optional[str] = None,
    template_file: Optional[str] = None,
) -> Settings:
    """Resolve settings.

    Resolution order per field:
      1) explicit argument (CLI option)
      2) RELEASE_COMPASS_* environment variable
      3) built-in default
    """

    level = log_level or _env(ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL
    tpl = template_file or _env(ENV_TEMPLATE_FILE)

    window_raw = _env(ENV_TIMELINE_WINDOW_DAYS)
    window = DEFAULT_TIMELINE_WINDOW_DAYS
    if window_raw:
        try:
            window = int(window_raw)
        except ValueError as e:
            raise ValueError(f"{ENV_TIMELINE_WINDOW_DAYS} must be an integer, got {window_raw!r}") from e
        if window <= 0:
            raise ValueError(f"{ENV_TIMELINE_WINDOW_DAYS} must be positive, got {window}")

    return Settings(log_level=level.upper(), template_file=tpl, timeline_window_days=window)


def _env(key: str) -> Optional[str]:
    value = (os.getenv(key, "") or "").strip()
    return value or None
