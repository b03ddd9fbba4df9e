from release_compass.core.io.load_project import load_project
from release_compass.core.lint.lint_project import lint_project


def _codes(path: str) -> set[str]:
    return {e.code for e in lint_project(load_project(path))}


def test_lint_clean_project():
    assert lint_project(load_project("examples/basic-project.yaml")) == []


def test_lint_cycle():
    errors = lint_project(load_project("examples/cyclic-project.yaml"))
    cycles = [e for e in errors if e.code == "L_CYCLE_DETECTED"]
    assert len(cycles) == 1
    assert "A -> C -> B -> A" in cycles[0].message


def test_lint_date_order():
    assert "L_DATE_ORDER" in _codes("examples/out-of-order.yaml")


def test_lint_budget_and_compression():
    doc = load_project("examples/basic-project.yaml")
    for m in doc["milestones"]:
        m["budget"] = m["budget"] * 3
    assert "L_BUDGET_OUT_OF_RANGE" in {e.code for e in lint_project(doc)}

    doc = load_project("examples/basic-project.yaml")
    doc["milestones"] = [m for m in doc["milestones"] if m["id"] in {"MAS", "ART"}]
    doc["milestones"][0]["dependencies"] = []
    assert "L_TIMELINE_COMPRESSED" in {e.code for e in lint_project(doc)}


def test_lint_duplicate_ids():
    doc = load_project("examples/basic-project.yaml")
    doc["milestones"].append(dict(doc["milestones"][0]))
    errors = lint_project(doc)
    assert [e.path for e in errors if e.code == "L_DUPLICATE_ID"] == ["milestones[5].id"]


def test_lint_non_list_is_left_to_validator():
    assert lint_project({"schema_version": "0.1.0", "milestones": None}) == []
