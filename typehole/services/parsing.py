"""
Source parsing: syntax trees, hole discovery, and position bookkeeping.
"""

import ast
import re
import logging
from typing import Dict, List, Optional, Set

from typehole.config import log_event, RUNTIME_MODULE
from typehole.models import HoleSite, Position, Range

HOLE_NAME_PATTERN = re.compile(r"^t(\d+)$")
_LINE_PATTERN = re.compile(r"[^\r\n]*(?:\r\n|\r|\n)?")

DECLARATION_NODES = (ast.ClassDef, ast.Assign, ast.AnnAssign)


class SourceLines:
    """
    Maps between ast (1-based line, utf-8 byte column) coordinates,
    editor positions (0-based line and character) and string offsets.
    """

    def __init__(self, text: str):
        self.text = text
        self.lines = [m.group(0) for m in _LINE_PATTERN.finditer(text) if m.group(0)]
        self._starts = [0]
        for line in self.lines:
            self._starts.append(self._starts[-1] + len(line))

    def position(self, lineno: int, col_offset: int) -> Position:
        line = lineno - 1
        raw = self.lines[line] if 0 <= line < len(self.lines) else ""
        character = len(raw.encode("utf-8")[:col_offset].decode("utf-8", errors="ignore"))
        return Position(line, character)

    def node_range(self, node: ast.AST) -> Range:
        return Range(
            self.position(node.lineno, node.col_offset),
            self.position(node.end_lineno, node.end_col_offset),
        )

    def offset(self, position: Position) -> int:
        if position.line >= len(self.lines):
            return len(self.text)
        line_text = self.lines[position.line].rstrip("\r\n")
        return self._starts[position.line] + min(position.character, len(line_text))

    def text_in(self, range: Range) -> str:
        return self.text[self.offset(range.start):self.offset(range.end)]

    def is_blank(self, line: int) -> bool:
        return 0 <= line < len(self.lines) and not self.lines[line].strip()


def get_ast(content: str) -> Optional[ast.Module]:
    """Parse source text. A file that does not parse yields None."""
    try:
        return ast.parse(content)
    except (SyntaxError, ValueError) as e:
        log_event(logging.DEBUG, "source_parse_failed", error=str(e))
        return None


def is_typehole_call(node: ast.AST) -> bool:
    return (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and isinstance(node.func.value, ast.Name)
        and node.func.value.id == RUNTIME_MODULE
        and HOLE_NAME_PATTERN.match(node.func.attr) is not None
        and len(node.args) == 1
        and not node.keywords
    )


def find_typeholes(tree: Optional[ast.AST]) -> List[ast.Call]:
    """All typehole calls in source order."""
    if tree is None:
        return []
    calls = [node for node in ast.walk(tree) if is_typehole_call(node)]
    return sorted(calls, key=lambda n: (n.lineno, n.col_offset))


def get_hole_id(node: ast.Call) -> str:
    """
    A hole's id is its wrapper name (`t0`, `t1`, ...). It depends only on the
    call itself, so edits anywhere else in the file keep it stable.
    """
    return node.func.attr


def hole_id_for_index(index: int) -> str:
    return f"t{index}"


def hole_index(hole_id: str) -> Optional[int]:
    match = HOLE_NAME_PATTERN.match(hole_id)
    return int(match.group(1)) if match else None


def find_hole(tree: Optional[ast.AST], hole_id: str) -> Optional[ast.Call]:
    return next((n for n in find_typeholes(tree) if get_hole_id(n) == hole_id), None)


def scan_for_holes(text: str) -> List[HoleSite]:
    """Deterministic scan of source text for holes. Unparseable text has none."""
    tree = get_ast(text)
    if tree is None:
        return []
    lines = SourceLines(text)
    return [HoleSite(get_hole_id(node), lines.node_range(node)) for node in find_typeholes(tree)]


def is_expression(text: str) -> bool:
    """
    Whether a selection can be wrapped into a recorder call. A selection that
    spans lines only parses inside the call's parentheses, and then it must
    not close them early.
    """
    text = text.strip() if text else ""
    if not text:
        return False
    try:
        ast.parse(text, mode="eval")
        return True
    except (SyntaxError, ValueError):
        pass
    try:
        tree = ast.parse(f"({text}\n)", mode="eval")
    except (SyntaxError, ValueError):
        return False
    return (tree.body.lineno, tree.body.col_offset) == (1, 1)


def get_parents(tree: ast.AST) -> Dict[ast.AST, ast.AST]:
    parents = {}
    for node in ast.walk(tree):
        for child in ast.iter_child_nodes(node):
            parents[child] = node
    return parents


def get_parent_on_root_level(tree: ast.Module, node: ast.AST) -> ast.stmt:
    """The top-level statement containing `node`."""
    parents = get_parents(tree)
    current = node
    while parents.get(current) is not tree:
        current = parents[current]
    return current


def get_wrapping_assignment(tree: ast.Module, call: ast.Call) -> Optional[ast.stmt]:
    """The `name = ...` / `name: T = ...` statement whose value contains the hole."""
    parents = get_parents(tree)
    current = call
    while current is not None and not isinstance(current, ast.stmt):
        current = parents.get(current)
    if isinstance(current, ast.Assign):
        if len(current.targets) == 1 and isinstance(current.targets[0], ast.Name):
            return current
    elif isinstance(current, ast.AnnAssign):
        if isinstance(current.target, ast.Name) and current.value is not None:
            return current
    return None


def find_last_import(tree: ast.Module) -> Optional[ast.stmt]:
    imports = [n for n in tree.body if isinstance(n, (ast.Import, ast.ImportFrom))]
    return imports[-1] if imports else None


def has_runtime_import(tree: ast.Module) -> bool:
    for node in tree.body:
        if isinstance(node, ast.Import):
            if any(a.name == RUNTIME_MODULE and a.asname is None for a in node.names):
                return True
    return False


def find_typing_import(tree: ast.Module) -> Optional[ast.ImportFrom]:
    for node in tree.body:
        if isinstance(node, ast.ImportFrom) and node.module == "typing" and node.level == 0:
            return node
    return None


def imported_typing_names(tree: ast.Module) -> Set[str]:
    names = set()
    for node in tree.body:
        if isinstance(node, ast.ImportFrom) and node.module == "typing" and node.level == 0:
            names.update(a.asname or a.name for a in node.names)
    return names


def declared_name(node: ast.stmt) -> Optional[str]:
    """Name bound by a top-level type declaration statement."""
    if isinstance(node, ast.ClassDef):
        return node.name
    if isinstance(node, ast.Assign) and len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
        return node.targets[0].id
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name) and node.value is not None:
        return node.target.id
    return None


def top_level_declarations(tree: ast.Module) -> Dict[str, ast.stmt]:
    declarations = {}
    for node in tree.body:
        if isinstance(node, DECLARATION_NODES):
            name = declared_name(node)
            if name is not None:
                declarations[name] = node
    return declarations


def bound_names(tree: ast.Module) -> Set[str]:
    """Every name bound at module level, for picking a free placeholder."""
    names = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            names.update((a.asname or a.name).split(".")[0] for a in node.names)
        else:
            for child in ast.walk(node):
                if isinstance(child, ast.Name) and isinstance(child.ctx, ast.Store):
                    names.add(child.id)
    return names


def referenced_names(node: ast.AST) -> Set[str]:
    """Names a declaration refers to, including string forward references."""
    names = set()
    for child in ast.walk(node):
        if isinstance(child, ast.Name) and isinstance(child.ctx, ast.Load):
            names.add(child.id)
        elif isinstance(child, ast.Constant) and isinstance(child.value, str) and child.value.isidentifier():
            names.add(child.value)
    return names


def get_all_dependency_declarations(tree: ast.Module, type_name: str) -> List[ast.stmt]:
    """
    The declaration of `type_name` plus every top-level declaration it reaches
    whose name starts with `type_name`, in source order.
    """
    declarations = top_level_declarations(tree)
    if type_name not in declarations:
        return []
    found = {}
    pending = [type_name]
    while pending:
        name = pending.pop()
        if name in found:
            continue
        node = declarations[name]
        found[name] = node
        for ref in referenced_names(_declaration_body(node)):
            if ref in declarations and ref.startswith(type_name) and ref not in found:
                pending.append(ref)
    return sorted(found.values(), key=lambda n: n.lineno)


def _declaration_body(node: ast.stmt) -> ast.AST:
    if isinstance(node, ast.ClassDef):
        return ast.Module(body=node.body, type_ignores=[])
    return node.value
