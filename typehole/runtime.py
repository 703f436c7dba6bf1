"""
Runtime recorder used by instrumented programs.

`typehole.t0(value)` describes the shape of `value`, posts it to the collector
and hands `value` back unchanged. Delivery is fire-and-forget: the program
being observed cannot do anything useful about a collector that is down.
"""

import os
import logging
import threading
from collections.abc import Mapping, Set
from dataclasses import asdict, is_dataclass
from typing import Any, Iterable, Optional

import httpx

from typehole.shapes import (
    ANY,
    NONE,
    Field,
    ListOf,
    ObjectShape,
    Primitive,
    ROOT_ITEM_TYPE_NAME,
    ROOT_TYPE_NAME,
    TypeExpr,
    render_declarations,
)
from typehole.synthesis import merged_type

ENDPOINT = os.getenv("TYPEHOLE_ENDPOINT", "http://localhost:17341/type")
TIMEOUT = float(os.getenv("TYPEHOLE_TIMEOUT", 2.0))
MAX_DEPTH = 12

logger = logging.getLogger("typehole.runtime")

_client: Optional[httpx.Client] = None
_client_lock = threading.Lock()

PRIMITIVES = (
    (bool, "bool"),
    (int, "int"),
    (float, "float"),
    (str, "str"),
    (bytes, "bytes"),
)


def shape_of(value: Any, depth: int = 0) -> TypeExpr:
    """Structural shape of a plain value. Anything exotic is Any."""
    if depth > MAX_DEPTH:
        return ANY
    if value is None:
        return NONE
    for kind, name in PRIMITIVES:
        if isinstance(value, kind):
            return Primitive(name)
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, Mapping):
        return ObjectShape(tuple(Field(str(key), shape_of(item, depth + 1)) for key, item in value.items()))
    if isinstance(value, (list, tuple, Set)):
        return ListOf(merged_type([shape_of(item, depth + 1) for item in value]))
    return ANY


def describe(values: Iterable[Any]) -> str:
    """Observed-shape text for a batch of values, wrapped in the array root."""
    item = merged_type([shape_of(value) for value in values])
    declaration = render_declarations(ROOT_ITEM_TYPE_NAME, item)
    return f"{ROOT_TYPE_NAME} = List[{ROOT_ITEM_TYPE_NAME}]\n\n\n{declaration.text}"


def get_client() -> httpx.Client:
    global _client
    with _client_lock:
        if _client is None:
            _client = httpx.Client(timeout=TIMEOUT)
        return _client


def send(hole_id: str, interfaces: str):
    try:
        get_client().post(ENDPOINT, json={"id": hole_id, "interfaces": interfaces})
    except httpx.HTTPError as e:
        logger.debug("typehole sample not delivered | hole_id=%s | error=%s", hole_id, e)


def record(hole_id: str, value: Any) -> Any:
    send(hole_id, describe([value]))
    return value
