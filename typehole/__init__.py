"""
Typehole - infer structural types from the values a program actually sees.

Instrumented code calls `typehole.t<N>(value)`; each such name records the
value's shape for hole `t<N>` and returns the value unchanged.
"""

import re
from functools import partial

from typehole.runtime import describe, record

__all__ = ["describe", "record"]

_HOLE_NAME = re.compile(r"^t\d+$")


def __getattr__(name):
    if _HOLE_NAME.match(name):
        return partial(record, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
