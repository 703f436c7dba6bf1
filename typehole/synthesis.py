"""
Type synthesis: merge every observed shape of a hole into one declaration.

Merge policy: two object shapes merge when they share at least one field and
every shared field has a compatible type; fields present on only one side
become NotRequired. Anything else stays a separate member of a Union.
"""

from typing import List, Optional, Sequence

from typehole.shapes import (
    ANY,
    ListOf,
    ObjectShape,
    Field,
    ShapeParseError,
    TypeDeclaration,
    TypeExpr,
    UnionOf,
    make_union,
    parse_sample,
    render_declarations,
    signature,
    union_options,
)


def merge_types(a: TypeExpr, b: TypeExpr) -> Optional[TypeExpr]:
    """The merged type of `a` and `b`, or None when they must stay apart."""
    if signature(a) == signature(b):
        return a
    if a == ANY:
        return b
    if b == ANY:
        return a
    if isinstance(a, ListOf) and isinstance(b, ListOf):
        item = merge_types(a.item, b.item)
        return ListOf(item) if item is not None else None
    if isinstance(a, ObjectShape) and isinstance(b, ObjectShape):
        return merge_objects(a, b)
    if isinstance(a, UnionOf) or isinstance(b, UnionOf):
        wide, narrow = (a, b) if len(union_options(a)) >= len(union_options(b)) else (b, a)
        wide_keys = {signature(o) for o in union_options(wide)}
        if all(signature(o) in wide_keys for o in union_options(narrow)):
            return wide
    return None


def merge_objects(a: ObjectShape, b: ObjectShape) -> Optional[ObjectShape]:
    b_names = set(b.field_names())
    if not b_names.intersection(a.field_names()):
        return None

    fields = []
    for field in a.fields:
        other = b.get(field.name)
        if other is None:
            fields.append(Field(field.name, field.type, required=False))
            continue
        merged = merge_types(field.type, other.type)
        if merged is None:
            return None
        fields.append(Field(field.name, merged, required=field.required and other.required))

    a_names = set(a.field_names())
    for field in b.fields:
        if field.name not in a_names:
            fields.append(Field(field.name, field.type, required=False))
    return ObjectShape(tuple(fields))


def merge_candidates(candidates: Sequence[TypeExpr]) -> List[TypeExpr]:
    """
    Fold distinct candidates into groups, first fit, in the order each shape
    first appeared. Then keep merging groups pairwise until no two of them
    merge. Repeats of a shape already seen are skipped.
    """
    groups: List[TypeExpr] = []
    seen = set()
    for candidate in candidates:
        key = signature(candidate)
        if key in seen:
            continue
        seen.add(key)
        for index, group in enumerate(groups):
            merged = merge_types(group, candidate)
            if merged is not None:
                groups[index] = merged
                break
        else:
            groups.append(candidate)

    changed = True
    while changed:
        changed = False
        for i in range(len(groups)):
            for j in range(i + 1, len(groups)):
                merged = merge_types(groups[i], groups[j])
                if merged is not None:
                    groups[i] = merged
                    del groups[j]
                    changed = True
                    break
            if changed:
                break
    return groups


def merged_type(candidates: Sequence[TypeExpr]) -> TypeExpr:
    groups = merge_candidates(candidates)
    if not groups:
        return ANY
    return make_union(groups)


def synthesize(samples: Sequence[str], type_name: str) -> TypeDeclaration:
    """
    Turn a hole's samples (most recent first) into one declaration named
    `type_name`. Never raises: unreadable samples are skipped and no samples
    at all give `type_name = Any`.
    """
    candidates: List[TypeExpr] = []
    for text in reversed(samples):
        try:
            parsed = parse_sample(text)
        except ShapeParseError:
            continue
        candidates.extend(parsed.candidates())
    return render_declarations(type_name, merged_type(candidates))
