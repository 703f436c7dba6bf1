"""
Structural value shapes: the model, the parser for observed-shape text, and
the renderer that turns a shape back into TypedDict declarations.

Observed-shape text is Python declaration source. The runtime wraps the values
it sends in an array root:

    IRootObject = List[IRootObjectItem]

    class IRootObjectItem(TypedDict):
        id: int
        name: str

This module has no dependency on the server so the runtime can use it too.
"""

import ast
import keyword
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

ROOT_TYPE_NAME = "IRootObject"
ROOT_ITEM_TYPE_NAME = "IRootObjectItem"

BUILTIN_NAMES = {
    "int": "int",
    "float": "float",
    "str": "str",
    "bool": "bool",
    "bytes": "bytes",
    "Any": "Any",
    "object": "Any",
    "None": "None",
    "NoneType": "None",
}
LIST_NAMES = {"List", "list", "Sequence", "Iterable", "Tuple", "tuple", "Set", "set", "FrozenSet", "frozenset"}
REQUIREDNESS_NAMES = {"Required", "NotRequired"}
TYPING_EXPORTS = {"Dict", "Mapping", "Literal", "Callable", "Tuple", "FrozenSet", "Set"}


class ShapeParseError(ValueError):
    """Observed-shape text could not be read as a shape description."""


@dataclass(frozen=True)
class Primitive:
    """A leaf type: a builtin, `None`, `Any`, or an opaque named type."""
    name: str


@dataclass(frozen=True)
class ListOf:
    item: "TypeExpr"


@dataclass(frozen=True)
class UnionOf:
    options: Tuple["TypeExpr", ...]


@dataclass(frozen=True)
class Field:
    name: str
    type: "TypeExpr"
    required: bool = True


@dataclass(frozen=True)
class ObjectShape:
    """A dict-shaped value. Field order is the order fields were first seen."""
    fields: Tuple[Field, ...] = ()

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Optional[Field]:
        return next((f for f in self.fields if f.name == name), None)


TypeExpr = Union[Primitive, ListOf, UnionOf, ObjectShape]

ANY = Primitive("Any")
NONE = Primitive("None")


def signature(expr: TypeExpr) -> str:
    """Canonical text for structural equality; ignores field and union order."""
    if isinstance(expr, Primitive):
        return expr.name
    if isinstance(expr, ListOf):
        return f"List[{signature(expr.item)}]"
    if isinstance(expr, UnionOf):
        return "Union[" + ",".join(sorted(signature(o) for o in expr.options)) + "]"
    parts = sorted(
        f"{f.name!r}{'' if f.required else '?'}:{signature(f.type)}" for f in expr.fields
    )
    return "{" + ",".join(parts) + "}"


def make_union(options: Iterable[TypeExpr]) -> TypeExpr:
    """Flatten and deduplicate; a single option is returned as itself."""
    flat: List[TypeExpr] = []
    seen: Set[str] = set()
    for option in options:
        nested = option.options if isinstance(option, UnionOf) else (option,)
        for item in nested:
            key = signature(item)
            if key not in seen:
                seen.add(key)
                flat.append(item)
    if not flat:
        return ANY
    if len(flat) == 1:
        return flat[0]
    return UnionOf(tuple(flat))


def union_options(expr: TypeExpr) -> Tuple[TypeExpr, ...]:
    return expr.options if isinstance(expr, UnionOf) else (expr,)


# --- PARSING ---

@dataclass(frozen=True)
class ParsedSample:
    """
    One observed-shape text. `array_root` is set when the text carries the
    runtime's `IRootObject = List[IRootObjectItem]` wrapper, in which case
    `root` is the element shape.
    """
    root: TypeExpr
    array_root: bool

    def candidates(self) -> List[TypeExpr]:
        return list(union_options(self.root))


def parse_sample(text: str) -> ParsedSample:
    """Read observed-shape text. Raises ShapeParseError if it is not one."""
    if not isinstance(text, str) or not text.strip():
        raise ShapeParseError("empty shape text")
    try:
        tree = ast.parse(text)
    except (SyntaxError, ValueError) as e:
        raise ShapeParseError(f"invalid shape text: {e}") from e

    declarations = _collect_declarations(tree)
    if ROOT_TYPE_NAME not in declarations:
        raise ShapeParseError(f"shape text does not declare {ROOT_TYPE_NAME}")

    resolver = _Resolver(declarations)
    root_node = declarations[ROOT_TYPE_NAME]
    if _is_array_root(root_node):
        if ROOT_ITEM_TYPE_NAME not in declarations:
            raise ShapeParseError(f"shape text does not declare {ROOT_ITEM_TYPE_NAME}")
        return ParsedSample(root=resolver.resolve_name(ROOT_ITEM_TYPE_NAME), array_root=True)
    return ParsedSample(root=resolver.resolve_name(ROOT_TYPE_NAME), array_root=False)


def _collect_declarations(tree: ast.Module) -> Dict[str, ast.stmt]:
    declarations = {}
    for node in tree.body:
        if isinstance(node, ast.ClassDef):
            declarations[node.name] = node
        elif isinstance(node, ast.Assign) and len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
            declarations[node.targets[0].id] = node
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name) and node.value is not None:
            declarations[node.target.id] = node
        elif isinstance(node, (ast.Import, ast.ImportFrom, ast.Pass)):
            continue
        elif isinstance(node, ast.Expr) and isinstance(node.value, ast.Constant):
            continue
        else:
            raise ShapeParseError(f"unexpected statement on line {node.lineno}")
    return declarations


def _subscript_base(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def _is_array_root(node: ast.stmt) -> bool:
    if not isinstance(node, (ast.Assign, ast.AnnAssign)):
        return False
    value = node.value
    return (
        isinstance(value, ast.Subscript)
        and _subscript_base(value.value) in ("List", "list")
        and isinstance(value.slice, ast.Name)
        and value.slice.id == ROOT_ITEM_TYPE_NAME
    )


def _is_typeddict_call(node: ast.AST) -> bool:
    return isinstance(node, ast.Call) and _subscript_base(node.func) == "TypedDict"


def _total_keyword(keywords: List[ast.keyword]) -> bool:
    for kw in keywords:
        if kw.arg == "total" and isinstance(kw.value, ast.Constant):
            return bool(kw.value.value)
    return True


class _Resolver:
    """Resolves declaration names to shapes, memoized, with a cycle guard."""

    def __init__(self, declarations: Dict[str, ast.stmt]):
        self.declarations = declarations
        self.cache: Dict[str, TypeExpr] = {}
        self.resolving: Set[str] = set()

    def resolve_name(self, name: str) -> TypeExpr:
        if name in self.cache:
            return self.cache[name]
        if name in self.declarations:
            if name in self.resolving:
                return ANY
            self.resolving.add(name)
            try:
                expr = self.declaration(self.declarations[name])
            finally:
                self.resolving.discard(name)
            self.cache[name] = expr
            return expr
        if name in BUILTIN_NAMES:
            return Primitive(BUILTIN_NAMES[name])
        return Primitive(name)

    def declaration(self, node: ast.stmt) -> TypeExpr:
        if isinstance(node, ast.ClassDef):
            if not any(_subscript_base(base) == "TypedDict" for base in node.bases):
                raise ShapeParseError(f"class {node.name} is not a TypedDict")
            total = _total_keyword(node.keywords)
            fields = []
            for stmt in node.body:
                if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                    fields.append(self.field(stmt.target.id, stmt.annotation, total))
            return ObjectShape(tuple(fields))
        if _is_typeddict_call(node.value):
            return self.functional_typeddict(node.value)
        return self.expr(node.value)

    def functional_typeddict(self, call: ast.Call) -> ObjectShape:
        if len(call.args) < 2 or not isinstance(call.args[1], ast.Dict):
            raise ShapeParseError("functional TypedDict needs a dict of fields")
        total = _total_keyword(call.keywords)
        fields = []
        for key, value in zip(call.args[1].keys, call.args[1].values):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                raise ShapeParseError("TypedDict keys must be strings")
            fields.append(self.field(key.value, value, total))
        return ObjectShape(tuple(fields))

    def field(self, name: str, annotation: ast.AST, total: bool) -> Field:
        required = total
        if isinstance(annotation, ast.Subscript) and _subscript_base(annotation.value) in REQUIREDNESS_NAMES:
            required = _subscript_base(annotation.value) == "Required"
            annotation = annotation.slice
        return Field(name, self.expr(annotation), required)

    def expr(self, node: ast.AST) -> TypeExpr:
        if isinstance(node, ast.Constant):
            if node.value is None:
                return NONE
            if isinstance(node.value, str):
                try:
                    return self.expr(ast.parse(node.value, mode="eval").body)
                except SyntaxError as e:
                    raise ShapeParseError(f"invalid forward reference {node.value!r}") from e
            raise ShapeParseError(f"unexpected constant {node.value!r}")
        if isinstance(node, ast.Name):
            return self.resolve_name(node.id)
        if isinstance(node, ast.Attribute):
            return self.resolve_name(node.attr)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return make_union([self.expr(node.left), self.expr(node.right)])
        if isinstance(node, ast.Subscript):
            base = _subscript_base(node.value)
            args = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
            if base in LIST_NAMES:
                items = [a for a in args if not (isinstance(a, ast.Constant) and a.value is Ellipsis)]
                return ListOf(make_union(self.expr(a) for a in items))
            if base == "Optional":
                return make_union([self.expr(args[0]), NONE])
            if base == "Union":
                return make_union(self.expr(a) for a in args)
            if base in REQUIREDNESS_NAMES:
                return self.expr(args[0])
            return Primitive(ast.unparse(node))
        raise ShapeParseError(f"unsupported type expression {ast.unparse(node)!r}")


# --- RENDERING ---

@dataclass(frozen=True)
class TypeDeclaration:
    """Rendered declaration source plus the names it needs from `typing`."""
    name: str
    text: str
    typing_names: FrozenSet[str]


def field_type_name(field_name: str) -> str:
    """CamelCase suffix used to name a nested shape after its field."""
    parts = [p for p in re.split(r"[^0-9a-zA-Z]+", field_name) if p]
    camel = "".join(p[0].upper() + p[1:] for p in parts)
    if not camel or camel[0].isdigit():
        camel = "Field" + camel
    return camel


def is_plain_identifier(name: str) -> bool:
    return name.isidentifier() and not keyword.iskeyword(name)


class _Renderer:
    def __init__(self):
        self.blocks: List[str] = []
        self.named: Dict[str, str] = {}
        self.taken: Set[str] = set()
        self.typing: Set[str] = set()

    def unique(self, name: str) -> str:
        candidate = name
        suffix = 2
        while candidate in self.taken:
            candidate = f"{name}{suffix}"
            suffix += 1
        self.taken.add(candidate)
        return candidate

    def declare_root(self, name: str, expr: TypeExpr):
        self.taken.add(name)
        if isinstance(expr, ObjectShape):
            self.declare_object(name, expr)
            return
        annotation = self.annotation(expr, name)
        self.blocks.append(f"{name} = {annotation}\n")

    def declare_object(self, name: str, shape: ObjectShape):
        """Append the class after every class its fields name, so the module imports cleanly."""
        self.named[signature(shape)] = name
        self.typing.add("TypedDict")

        entries = []
        for f in shape.fields:
            annotation = self.annotation(f.type, name + field_type_name(f.name))
            if not f.required:
                self.typing.add("NotRequired")
                annotation = f"NotRequired[{annotation}]"
            entries.append((f.name, annotation))

        if all(is_plain_identifier(key) for key, _ in entries):
            body = "".join(f"    {key}: {annotation}\n" for key, annotation in entries) or "    pass\n"
            self.blocks.append(f"class {name}(TypedDict):\n{body}")
        else:
            items = ", ".join(f"{key!r}: {annotation}" for key, annotation in entries)
            self.blocks.append(f"{name} = TypedDict({name!r}, {{{items}}})\n")

    def object_name(self, shape: ObjectShape, hint: str) -> str:
        key = signature(shape)
        if key not in self.named:
            self.declare_object(self.unique(hint), shape)
        return self.named[key]

    def annotation(self, expr: TypeExpr, hint: str) -> str:
        if isinstance(expr, Primitive):
            if expr.name == "Any":
                self.typing.add("Any")
            self.typing.update(TYPING_EXPORTS.intersection(re.findall(r"[A-Za-z_]\w*", expr.name)))
            return expr.name
        if isinstance(expr, ListOf):
            self.typing.add("List")
            return f"List[{self.annotation(expr.item, hint + 'Item')}]"
        if isinstance(expr, ObjectShape):
            return self.object_name(expr, hint)

        options = [o for o in expr.options if o != NONE]
        nullable = len(options) < len(expr.options)
        if nullable and len(options) == 1:
            self.typing.add("Optional")
            return f"Optional[{self.annotation(options[0], hint)}]"
        rendered = []
        object_count = 0
        for option in expr.options:
            if isinstance(option, ObjectShape):
                object_count += 1
                rendered.append(self.annotation(option, f"{hint}{object_count}"))
            else:
                rendered.append(self.annotation(option, hint))
        self.typing.add("Union")
        return f"Union[{', '.join(rendered)}]"

    def text(self) -> str:
        return "\n\n".join(self.blocks)


def render_declarations(name: str, expr: TypeExpr) -> TypeDeclaration:
    """Render `expr` as declarations rooted at `name`; nested objects become auxiliary classes."""
    renderer = _Renderer()
    renderer.declare_root(name, expr)
    return TypeDeclaration(name=name, text=renderer.text(), typing_names=frozenset(renderer.typing))

