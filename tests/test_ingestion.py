from __future__ import annotations

import threading
from pathlib import Path

import pytest

from typehole.models import Position, Range
from typehole.runtime import describe
from typehole.services.ingestion import process_sample
from typehole.services.sources import read_source_file
from typehole.workspace import Workspace

SELECTION = Range(Position(7, 9), Position(7, 15))


def instrumented(workspace: Workspace) -> str:
    workspace.load()
    return workspace.add_typehole("app.py", SELECTION)


def test_end_to_end_types_follow_the_samples(workspace: Workspace, source_file: Path) -> None:
    workspace.load()
    assert workspace.store.get_state().holes == ()

    hole_id = workspace.add_typehole("app.py", SELECTION)
    assert hole_id == "t0"
    assert "result: AutoDiscovered = typehole.t0(load())" in source_file.read_text()
    assert "AutoDiscovered = Any\n" in source_file.read_text()

    first = process_sample(workspace, "t0", describe([{"x": 1}]))
    assert first == {"status": "success", "type_name": "AutoDiscovered", "samples": 1, "changed": True}
    assert "class AutoDiscovered(TypedDict):\n    x: int\n" in source_file.read_text()

    process_sample(workspace, "t0", describe([{"x": 2, "y": "s"}]))
    text = source_file.read_text()
    assert "class AutoDiscovered(TypedDict):\n    x: int\n    y: NotRequired[str]\n" in text
    assert "from typing import Any, NotRequired, TypedDict\n" in text

    source_file.unlink()
    workspace.on_file_changed("app.py")
    assert workspace.store.get_state().holes == ()
    assert workspace.samples.get_samples("t0") == ()


def test_same_sample_twice_leaves_the_file_alone(workspace: Workspace, source_file: Path) -> None:
    instrumented(workspace)
    process_sample(workspace, "t0", describe([{"x": 1}]))
    before = source_file.read_text()

    result = process_sample(workspace, "t0", describe([{"x": 3}]))

    assert result["changed"] is False
    assert result["samples"] == 2
    assert source_file.read_text() == before


def test_malformed_shape_text_is_rejected(workspace: Workspace, source_file: Path) -> None:
    instrumented(workspace)

    result = process_sample(workspace, "t0", "definitely not python (")

    assert result["status"] == "rejected"
    assert workspace.samples.get_samples("t0") == ()


def test_sample_for_unknown_hole_is_dropped(workspace: Workspace, source_file: Path) -> None:
    workspace.load()

    assert process_sample(workspace, "t3", describe([1])) == {"status": "dropped"}
    assert workspace.store.get_state().samples == {}


def test_hole_without_assignment_gets_a_warning(workspace: Workspace, tmp_path: Path) -> None:
    (tmp_path / "main.py").write_text("import typehole\n\nprint(typehole.t0(load()))\n")
    workspace.load()
    hole_range = Range(Position(2, 6), Position(2, 25))

    assert workspace.registry.get_warnings("main.py") == (hole_range,)

    workspace.registry.clear_warnings("main.py")
    result = process_sample(workspace, "t0", describe([1]))

    assert result == {"status": "no_type_alias", "samples": 1}
    assert workspace.registry.get_warnings("main.py") == (hole_range,)


def test_missing_source_file_is_an_error(workspace: Workspace, source_file: Path) -> None:
    instrumented(workspace)
    source_file.unlink()

    result = process_sample(workspace, "t0", describe([1]))

    assert result["status"] == "error"


def test_type_updates_are_broadcast(workspace: Workspace, source_file: Path) -> None:
    instrumented(workspace)
    client = workspace.add_client()

    process_sample(workspace, "t0", describe([[1, 2]]))

    events = []
    while not client.empty():
        events.append(client.get_nowait())
    updates = [e for e in events if e["type"] == "type_updated"]
    assert updates[-1]["declaration"] == "AutoDiscovered = List[int]\n"
    assert any(e["type"] == "state" for e in events)


def test_id_conflicts_across_files_are_flagged(workspace: Workspace, tmp_path: Path) -> None:
    (tmp_path / "a.py").write_text("import typehole\n\nx = typehole.t0(1)\n")
    (tmp_path / "b.py").write_text("import typehole\n\ny = typehole.t0(2)\n")

    workspace.load()

    assert workspace.registry.get_hole("t0").file_name == "a.py"
    assert workspace.registry.get_warnings("b.py") == (Range(Position(2, 4), Position(2, 18)),)


def test_next_hole_id_skips_ids_in_use(workspace: Workspace, tmp_path: Path) -> None:
    (tmp_path / "a.py").write_text("import typehole\n\nx = typehole.t0(1)\n")
    workspace.load()

    assert workspace.next_hole_id("y = typehole.t1(2)\n") == "t2"


@pytest.mark.parametrize(
    "values",
    [
        [{"user": {"name": "a"}}],
        [{"a": 1}, {"b": "s"}],
        [{"rows": [{"id": 1, "tags": {"k": "v"}}]}, "text", [1, 2]],
    ],
)
def test_written_types_import_cleanly(
    workspace: Workspace, source_file: Path, monkeypatch: pytest.MonkeyPatch, values: list
) -> None:
    monkeypatch.setattr("typehole.runtime.send", lambda hole_id, text: None)
    instrumented(workspace)

    for value in values:
        assert process_sample(workspace, "t0", describe([value]))["status"] == "success"

    namespace = {"__name__": "instrumented_app"}
    exec(compile(source_file.read_text(), str(source_file), "exec"), namespace)
    assert namespace["result"] == {"x": 1}


def test_adding_a_hole_waits_for_a_sample_write_back(
    workspace: Workspace, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "main.py"
    path.write_text(
        "import typehole\nfrom typing import Any\n\nother = load()\n\n"
        "AutoDiscovered = Any\n\n\nresult: AutoDiscovered = typehole.t0(load())\n"
    )
    workspace.load()
    adder = threading.Thread(
        target=workspace.add_typehole, args=("main.py", Range(Position(3, 8), Position(3, 14)))
    )

    def read_then_add(root, file_name):
        text = read_source_file(root, file_name)
        adder.start()
        adder.join(timeout=0.2)
        return text

    monkeypatch.setattr("typehole.services.ingestion.read_source_file", read_then_add)

    process_sample(workspace, "t0", describe([{"x": 1}]))
    adder.join(timeout=5.0)

    text = path.read_text()
    assert "other: AutoDiscovered1 = typehole.t1(load())" in text
    assert "class AutoDiscovered(TypedDict):\n    x: int\n" in text
    assert {h.id for h in workspace.store.get_state().holes} == {"t0", "t1"}
