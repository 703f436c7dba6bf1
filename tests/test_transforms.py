from __future__ import annotations

import pytest

from typehole.models import Position, Range, TextEdit
from typehole.services.transforms import (
    TransformError,
    apply_edits,
    find_hole_range,
    find_type_alias_name,
    insert_instrumentation,
    replace_type_declaration,
)
from typehole.synthesis import synthesize
from typehole.runtime import describe

SOURCE = '''import os


def load():
    return {"x": 1}


result = load()
'''

INSTRUMENTED = '''import os
import typehole
from typing import Any


def load():
    return {"x": 1}


AutoDiscovered = Any


result: AutoDiscovered = typehole.t0(load())
'''

SELECTION = Range(Position(7, 9), Position(7, 15))


def test_apply_edits_keeps_listed_order_for_inserts_at_one_position() -> None:
    text = "abc\ndef\n"
    edits = [
        TextEdit.insert(Position(1, 0), "first\n"),
        TextEdit.insert(Position(1, 0), "second\n"),
        TextEdit(Range(Position(0, 1), Position(0, 2)), "B"),
    ]

    assert apply_edits(text, edits) == "aBc\nfirst\nsecond\ndef\n"


def test_insert_instrumentation_wraps_imports_and_annotates() -> None:
    assert insert_instrumentation(SOURCE, SELECTION, "t0") == INSTRUMENTED


def test_insert_instrumentation_reuses_existing_imports() -> None:
    source = "import typehole\nfrom typing import List\n\nrows = fetch()\n"

    result = insert_instrumentation(source, Range(Position(3, 7), Position(3, 14)), "t4")

    assert result == (
        "import typehole\nfrom typing import Any, List\n\n"
        "AutoDiscovered = Any\n\n\n"
        "rows: AutoDiscovered = typehole.t4(fetch())\n"
    )


def test_insert_instrumentation_picks_a_free_placeholder_name() -> None:
    source = INSTRUMENTED + "\nother = load()\n"
    last_line = source.count("\n") - 1

    result = insert_instrumentation(source, Range(Position(last_line, 8), Position(last_line, 14)), "t1")

    assert "AutoDiscovered1 = Any\n" in result
    assert "other: AutoDiscovered1 = typehole.t1(load())\n" in result


def test_insert_instrumentation_without_assignment_only_wraps() -> None:
    source = "import os\n\nprint(load())\n"

    result = insert_instrumentation(source, Range(Position(2, 6), Position(2, 12)), "t0")

    assert result == "import os\nimport typehole\n\nprint(typehole.t0(load()))\n"
    assert find_type_alias_name(result, "t0") is None


def test_insert_instrumentation_rejects_non_expressions() -> None:
    with pytest.raises(TransformError):
        insert_instrumentation(SOURCE, Range(Position(7, 0), Position(7, 15)), "t0")


def test_find_type_alias_name_and_hole_range() -> None:
    assert find_type_alias_name(INSTRUMENTED, "t0") == "AutoDiscovered"
    assert find_type_alias_name(INSTRUMENTED, "t1") is None
    assert find_hole_range(INSTRUMENTED, "t0") == Range(Position(12, 25), Position(12, 44))


def test_replace_type_declaration_swaps_the_placeholder() -> None:
    declaration = synthesize([describe([{"x": 1}])], "AutoDiscovered")

    result = replace_type_declaration(INSTRUMENTED, "t0", declaration.text, declaration.typing_names)

    assert result == '''import os
import typehole
from typing import Any, TypedDict


def load():
    return {"x": 1}


class AutoDiscovered(TypedDict):
    x: int


result: AutoDiscovered = typehole.t0(load())
'''


def test_replace_type_declaration_removes_owned_auxiliary_declarations() -> None:
    union = synthesize([describe([{"a": 1}]), describe([{"b": "s"}])], "AutoDiscovered")
    with_union = replace_type_declaration(INSTRUMENTED, "t0", union.text, union.typing_names)
    single = synthesize([describe([{"x": 1}])], "AutoDiscovered")

    result = replace_type_declaration(with_union, "t0", single.text, single.typing_names)

    assert "AutoDiscovered1" not in result
    assert "AutoDiscovered2" not in result
    assert "class AutoDiscovered(TypedDict):\n    x: int\n\n\nresult:" in result
    assert "from typing import Any, TypedDict, Union\n" in result


def test_replace_type_declaration_is_stable() -> None:
    declaration = synthesize([describe([{"x": 1, "tags": ["a"]}])], "AutoDiscovered")

    once = replace_type_declaration(INSTRUMENTED, "t0", declaration.text, declaration.typing_names)
    twice = replace_type_declaration(once, "t0", declaration.text, declaration.typing_names)

    assert twice == once


def test_replace_type_declaration_at_end_of_file() -> None:
    source = "import typehole\nfrom typing import Any\n\nvalue: Later = typehole.t0(1)\n\nLater = Any\n"

    result = replace_type_declaration(source, "t0", "Later = int\n")

    assert result == "import typehole\nfrom typing import Any\n\nvalue: Later = typehole.t0(1)\n\n\nLater = int\n"


def test_replace_type_declaration_keeps_two_blank_lines_below_imports() -> None:
    source = insert_instrumentation(
        "import typehole\n\nrows = fetch()\n", Range(Position(2, 7), Position(2, 14)), "t0"
    )
    declaration = synthesize([describe([{"x": 1}])], "AutoDiscovered")

    once = replace_type_declaration(source, "t0", declaration.text, declaration.typing_names)
    twice = replace_type_declaration(once, "t0", declaration.text, declaration.typing_names)

    assert once == (
        "import typehole\nfrom typing import Any, TypedDict\n\n\n"
        "class AutoDiscovered(TypedDict):\n    x: int\n\n\n"
        "rows: AutoDiscovered = typehole.t0(fetch())\n"
    )
    assert twice == once


def test_replace_type_declaration_misses() -> None:
    assert replace_type_declaration(INSTRUMENTED, "t9", "X = int\n") is None
    assert replace_type_declaration("value = typehole.t0(1)\n", "t0", "X = int\n") is None
    assert replace_type_declaration("value: Missing = typehole.t0(1)\n", "t0", "X = int\n") is None
    assert replace_type_declaration("value: Missing = typehole.t0(\n", "t0", "X = int\n") is None
