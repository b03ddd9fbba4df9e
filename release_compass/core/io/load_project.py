from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from release_compass.core.errors import ProjectLoadError
from release_compass.core.io.codec import DOCUMENT_ALIASES, SCHEMA_VERSION, normalize_keys
from release_compass.logging_config import get_logger

logger = get_logger("io.load_project")

_YAML_SUFFIXES = {".yaml", ".yml"}


def load_project(path: str) -> dict[str, Any]:
    """Load a YAML/JSON project file into a project document.

    Two shapes are accepted:
      - a project file: schema_version, project, milestones (list)
      - a saved broadcast state (timeline-sync ``state``): currentProject and
        milestones keyed by id; the summary and timeline bounds are dropped
        since they are recomputed on load

    Returns a dict with keys: schema_version, project, milestones, __file__.
    Field types are not coerced; validator owns shape checking.
    """

    p = Path(path)
    data = _parse(p, _read_text(p))
    if not isinstance(data, dict):
        raise ProjectLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    data = normalize_keys(data, DOCUMENT_ALIASES)
    milestones = data.get("milestones")
    schema_version = data.get("schema_version")

    if isinstance(milestones, dict):
        logger.debug("%s: reading milestones keyed by id (broadcast state)", p)
        milestones = [_keyed_milestone(mid, raw) for mid, raw in milestones.items()]
        if schema_version is None:
            schema_version = SCHEMA_VERSION

    return {
        "schema_version": schema_version,
        "project": data.get("project"),
        "milestones": milestones,
        "__file__": str(p),
    }


def dump_project_yaml(doc: dict[str, Any], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    clean = {k: v for k, v in doc.items() if not k.startswith("__")}
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(clean, f, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _read_text(p: Path) -> str:
    if not p.exists():
        raise ProjectLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))
    if p.suffix.lower() not in _YAML_SUFFIXES | {".json"}:
        raise ProjectLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message="supported formats are .yaml/.yml and .json",
            file=str(p),
        )
    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ProjectLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e


def _parse(p: Path, text: str) -> Any:
    if p.suffix.lower() in _YAML_SUFFIXES:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ProjectLoadError(code="E_YAML_PARSE", message=str(e), file=str(p)) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ProjectLoadError(code="E_JSON_PARSE", message=str(e), file=str(p)) from e


def _keyed_milestone(mid: Any, raw: Any) -> Any:
    # The map key is the id; a record that carries no id of its own takes it.
    if isinstance(raw, dict) and "id" not in raw:
        return {"id": mid, **raw}
    return raw
