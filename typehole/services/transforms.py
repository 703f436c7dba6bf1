"""
Source transforms: wrap an expression into a recorder, and splice synthesized
declarations over a hole's placeholder type.
"""

import ast
from typing import Iterable, List, Optional

from typehole.config import PLACEHOLDER_TYPE, RUNTIME_MODULE
from typehole.models import Position, Range, TextEdit
from typehole.services.parsing import (
    SourceLines,
    bound_names,
    find_hole,
    find_last_import,
    find_typing_import,
    get_all_dependency_declarations,
    get_ast,
    get_parent_on_root_level,
    get_wrapping_assignment,
    has_runtime_import,
    imported_typing_names,
    is_expression,
)


class TransformError(ValueError):
    """The requested edit cannot be made on this source."""


def apply_edits(text: str, edits: Iterable[TextEdit]) -> str:
    """
    Apply non-overlapping edits. Inserts at the same position come out in the
    order they were listed.
    """
    lines = SourceLines(text)
    spans = [
        (lines.offset(edit.range.start), lines.offset(edit.range.end), index, edit.new_text)
        for index, edit in enumerate(edits)
    ]
    for start, end, _, new_text in sorted(spans, key=lambda s: (s[0], s[2]), reverse=True):
        text = text[:start] + new_text + text[end:]
    return text


def wrap_into_recorder(hole_id: str, expression: str) -> str:
    return f"{RUNTIME_MODULE}.{hole_id}({expression})"


def free_type_name(tree: ast.Module, base: str = PLACEHOLDER_TYPE) -> str:
    """`base`, or `base1`, `base2`, ... when the module already binds it."""
    taken = bound_names(tree)
    candidate = base
    suffix = 1
    while candidate in taken:
        candidate = f"{base}{suffix}"
        suffix += 1
    return candidate


def _import_edit(tree: ast.Module, lines: SourceLines, statement: str) -> TextEdit:
    last_import = find_last_import(tree)
    if last_import is not None:
        end = lines.position(last_import.end_lineno, last_import.end_col_offset)
        return TextEdit.insert(end, "\n" + statement)
    first = tree.body[0] if tree.body else None
    is_docstring = (
        isinstance(first, ast.Expr)
        and isinstance(first.value, ast.Constant)
        and isinstance(first.value.value, str)
    )
    if is_docstring:
        end = lines.position(first.end_lineno, first.end_col_offset)
        return TextEdit.insert(end, "\n\n" + statement)
    return TextEdit.insert(Position(0, 0), statement + "\n\n")


def typing_import_edit(tree: ast.Module, lines: SourceLines, names: Iterable[str]) -> Optional[TextEdit]:
    """Edit that makes `names` importable from typing, or None if they already are."""
    missing = set(names) - imported_typing_names(tree)
    if not missing:
        return None
    existing = find_typing_import(tree)
    if existing is None:
        return _import_edit(tree, lines, f"from typing import {', '.join(sorted(missing))}")
    entries = [(a.name, f"{a.name} as {a.asname}" if a.asname else a.name) for a in existing.names]
    entries += [(name, name) for name in missing]
    rendered = ", ".join(text for _, text in sorted(entries))
    return TextEdit(lines.node_range(existing), f"from typing import {rendered}")


def _annotation_edit(assignment: ast.stmt, lines: SourceLines, type_name: str) -> TextEdit:
    if isinstance(assignment, ast.AnnAssign):
        return TextEdit(lines.node_range(assignment.annotation), type_name)
    target = lines.node_range(assignment.targets[0])
    return TextEdit.insert(target.end, f": {type_name}")


def insert_instrumentation(text: str, selection: Range, hole_id: str, placeholder: str = PLACEHOLDER_TYPE) -> str:
    """
    Wrap the selected expression into `typehole.<hole_id>(...)`. When the hole
    is the value of an assignment, also annotate the target with a fresh
    placeholder alias declared as `Any` above the enclosing statement.
    """
    lines = SourceLines(text)
    selected = lines.text_in(selection)
    if not is_expression(selected):
        raise TransformError("selection is not an expression")
    tree = get_ast(text)
    if tree is None:
        raise TransformError("source does not parse")

    edits = [TextEdit(selection, wrap_into_recorder(hole_id, selected))]
    if not has_runtime_import(tree):
        edits.append(_import_edit(tree, lines, f"import {RUNTIME_MODULE}"))
    instrumented = apply_edits(text, edits)

    tree = get_ast(instrumented)
    hole = find_hole(tree, hole_id)
    if hole is None:
        raise TransformError("instrumented source does not parse")
    assignment = get_wrapping_assignment(tree, hole)
    if assignment is None:
        return instrumented

    lines = SourceLines(instrumented)
    type_name = free_type_name(tree, placeholder)
    root_statement = get_parent_on_root_level(tree, hole)
    edits = [
        TextEdit.insert(Position(root_statement.lineno - 1, 0), f"{type_name} = Any\n\n\n"),
        _annotation_edit(assignment, lines, type_name),
    ]
    typing_edit = typing_import_edit(tree, lines, ["Any"])
    if typing_edit is not None:
        edits.append(typing_edit)
    return apply_edits(instrumented, edits)


def find_type_alias_name(text: str, hole_id: str) -> Optional[str]:
    """Name annotating the variable that receives the hole's value."""
    tree = get_ast(text)
    hole = find_hole(tree, hole_id)
    if hole is None:
        return None
    assignment = get_wrapping_assignment(tree, hole)
    if isinstance(assignment, ast.AnnAssign) and isinstance(assignment.annotation, ast.Name):
        return assignment.annotation.id
    return None


def find_hole_range(text: str, hole_id: str) -> Optional[Range]:
    tree = get_ast(text)
    hole = find_hole(tree, hole_id)
    return SourceLines(text).node_range(hole) if hole is not None else None


def _declaration_deletion(node: ast.stmt, lines: SourceLines) -> TextEdit:
    """Delete whole lines of a declaration plus the blank lines after it."""
    first_line = min([node.lineno] + [d.lineno for d in getattr(node, "decorator_list", [])]) - 1
    next_line = node.end_lineno
    while lines.is_blank(next_line):
        next_line += 1
    return TextEdit.delete(Range(Position(first_line, 0), Position(next_line, 0)))


def replace_type_declaration(
    text: str, hole_id: str, declaration_text: str, typing_names: Iterable[str] = ()
) -> Optional[str]:
    """
    Replace the alias annotating the hole's variable, and the declarations it
    owns, with `declaration_text`. None when the hole or its alias is gone.
    """
    tree = get_ast(text)
    hole = find_hole(tree, hole_id)
    if hole is None:
        return None
    type_name = find_type_alias_name(text, hole_id)
    if type_name is None:
        return None
    existing = get_all_dependency_declarations(tree, type_name)
    if not existing:
        return None

    lines = SourceLines(text)
    deletions: List[TextEdit] = [_declaration_deletion(node, lines) for node in existing]
    at_end_of_file = deletions[-1].range.end.line >= len(lines.lines)
    first_line = deletions[0].range.start.line
    blank_above = 0
    while lines.is_blank(first_line - blank_above - 1):
        blank_above += 1
    padding = "\n" * (2 - blank_above) if first_line - blank_above > 0 and blank_above < 2 else ""
    block = padding + declaration_text.rstrip("\n") + "\n" + ("" if at_end_of_file else "\n\n")

    edits = [TextEdit.insert(deletions[0].range.start, block)] + deletions
    typing_edit = typing_import_edit(tree, lines, typing_names)
    if typing_edit is not None:
        edits.append(typing_edit)
    return apply_edits(text, edits)
