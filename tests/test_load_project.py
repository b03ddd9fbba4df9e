import json
from datetime import date
from pathlib import Path

import yaml

from release_compass.core.errors import ProjectLoadError
from release_compass.core.io.codec import snapshot_to_dict
from release_compass.core.io.load_project import dump_project_yaml, load_project
from release_compass.core.session.project_session import ProjectSession
from release_compass.core.validate.validate_project import validate_project


def test_load_yaml_success():
    doc = load_project("examples/basic-project.yaml")
    assert doc["schema_version"] == "0.1.0"
    assert isinstance(doc["milestones"], list)
    assert doc["project"]["type"] == "single"
    assert doc["__file__"].endswith("basic-project.yaml")


def test_load_json_success(tmp_path: Path):
    p = tmp_path / "project.json"
    p.write_text('{"schema_version": "0.1.0", "milestones": []}', encoding="utf-8")
    doc = load_project(str(p))
    assert doc["milestones"] == []
    assert doc["project"] is None


def test_load_missing_file():
    try:
        load_project("examples/does-not-exist.yaml")
        assert False, "expected ProjectLoadError"
    except ProjectLoadError as e:
        assert e.code == "E_FILE_NOT_FOUND"


def test_load_unsupported_format(tmp_path):
    p = tmp_path / "project.txt"
    p.write_text("hello", encoding="utf-8")
    try:
        load_project(str(p))
        assert False, "expected ProjectLoadError"
    except ProjectLoadError as e:
        assert e.code == "E_UNSUPPORTED_FORMAT"


def test_load_bad_json(tmp_path):
    p = tmp_path / "project.json"
    p.write_text("{nope", encoding="utf-8")
    try:
        load_project(str(p))
        assert False, "expected ProjectLoadError"
    except ProjectLoadError as e:
        assert e.code == "E_JSON_PARSE"


def test_load_non_mapping(tmp_path):
    p = tmp_path / "project.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    try:
        load_project(str(p))
        assert False, "expected ProjectLoadError"
    except ProjectLoadError as e:
        assert e.code == "E_INVALID_TOP_LEVEL"


def test_dump_drops_private_keys(tmp_path: Path):
    doc = load_project("examples/basic-project.yaml")
    out = tmp_path / "nested" / "copy.yaml"
    dump_project_yaml(doc, str(out))

    got = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert "__file__" not in got
    assert [m["id"] for m in got["milestones"]] == ["REC", "MIX", "MAS", "ART", "REL"]


def test_load_broadcast_state(tmp_path: Path):
    graph, errors = validate_project(load_project("examples/basic-project.yaml"))
    assert errors == []
    session = ProjectSession(graph.project, graph.milestones)
    p = tmp_path / "state.json"
    p.write_text(json.dumps(snapshot_to_dict(session.snapshot())), encoding="utf-8")

    doc = load_project(str(p))
    assert doc["schema_version"] == "0.1.0"
    assert set(doc) == {"schema_version", "project", "milestones", "__file__"}
    assert [m["id"] for m in doc["milestones"]] == ["REC", "MIX", "MAS", "ART", "REL"]

    reloaded, errors = validate_project(doc)
    assert errors == []
    assert reloaded.project.name == "Night Drive"
    assert reloaded.milestones[4].dependencies == ["MAS", "ART"]
    assert reloaded.milestones[0].actual_cost == 620


def test_keyed_milestones_take_id_from_key(tmp_path: Path):
    p = tmp_path / "state.yaml"
    p.write_text(
        "schemaVersion: '0.1.0'\n"
        "milestones:\n"
        "  A:\n"
        "    title: Alpha\n"
        "    date: 2027-01-01\n"
        "    budget: 10\n"
        "    riskLevel: low\n",
        encoding="utf-8",
    )
    doc = load_project(str(p))
    assert doc["milestones"] == [
        {"id": "A", "title": "Alpha", "date": date(2027, 1, 1), "budget": 10, "riskLevel": "low"}
    ]
    graph, errors = validate_project(doc)
    assert errors == []
    assert graph.milestones[0].id == "A"
