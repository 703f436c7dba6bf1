from __future__ import annotations

from typehole.models import Position, Range
from typehole.services.parsing import (
    SourceLines,
    get_all_dependency_declarations,
    get_ast,
    get_hole_id,
    find_typeholes,
    hole_index,
    is_expression,
    scan_for_holes,
)


def test_scan_finds_holes_in_source_order() -> None:
    text = "b = typehole.t3(y)\na = typehole.t0(x)\n"

    sites = scan_for_holes(text)

    assert [site.id for site in sites] == ["t3", "t0"]
    assert sites[0].range == Range(Position(0, 4), Position(0, 18))
    assert sites[1].range == Range(Position(1, 4), Position(1, 18))


def test_scan_ignores_calls_that_are_not_recorders() -> None:
    text = "\n".join([
        "a = other.t0(x)",
        "b = typehole.record(x)",
        "c = typehole.t1(x, y)",
        "d = typehole.tx(x)",
        "e = typehole.t2(value=x)",
    ])

    assert scan_for_holes(text) == []


def test_scan_of_unparseable_text_finds_nothing() -> None:
    assert scan_for_holes("a = typehole.t0(\n") == []
    assert get_ast("def (") is None


def test_hole_id_is_the_wrapper_name() -> None:
    tree = get_ast("value = typehole.t12(compute())\n")

    assert [get_hole_id(node) for node in find_typeholes(tree)] == ["t12"]
    assert hole_index("t12") == 12
    assert hole_index("x12") is None


def test_hole_id_does_not_depend_on_position() -> None:
    before = "value = typehole.t0(compute())\n"
    after = "import os\n\n\ndef helper():\n    pass\n\n\nvalue = typehole.t0(compute())\n"

    assert [s.id for s in scan_for_holes(before)] == [s.id for s in scan_for_holes(after)]
    assert scan_for_holes(before)[0].range != scan_for_holes(after)[0].range


def test_positions_count_characters_not_bytes() -> None:
    text = 'name = "héllo" + typehole.t0(value)\n'

    site = scan_for_holes(text)[0]

    assert site.range == Range(Position(0, 17), Position(0, 35))
    assert SourceLines(text).text_in(site.range) == "typehole.t0(value)"


def test_is_expression() -> None:
    assert is_expression("fetch_user(1)")
    assert is_expression("a.b[0]\n  .c")
    assert not is_expression("")
    assert not is_expression("x = 1")
    assert not is_expression("return x")
    assert not is_expression("a) + (b")
    assert not is_expression("a,\nb")


def test_dependency_declarations_follow_owned_names_only() -> None:
    text = "\n".join([
        "class Shared(TypedDict):",
        "    a: int",
        "",
        "class UserAddress(TypedDict):",
        "    city: str",
        "",
        "class User(TypedDict):",
        "    address: UserAddress",
        "    shared: Shared",
        "",
    ])

    nodes = get_all_dependency_declarations(get_ast(text), "User")

    assert [node.name for node in nodes] == ["UserAddress", "User"]
