"""
Data structures (dataclasses) for Typehole.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True, order=True)
class Position:
    """A 0-based (line, character) location in a source file."""
    line: int
    character: int

    def to_dict(self) -> Dict:
        return {"line": self.line, "character": self.character}

    @classmethod
    def from_dict(cls, data: Dict) -> "Position":
        return cls(line=int(data["line"]), character=int(data["character"]))


@dataclass(frozen=True, order=True)
class Range:
    """A span of source text. Equality is exact on both ends."""
    start: Position
    end: Position

    def to_dict(self) -> Dict:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict) -> "Range":
        return cls(start=Position.from_dict(data["start"]), end=Position.from_dict(data["end"]))


@dataclass(frozen=True)
class Hole:
    """One instrumentation point, owned by a workspace-relative file."""
    id: str
    file_name: str


@dataclass(frozen=True)
class HoleSite:
    """A hole found by scanning source text."""
    id: str
    range: Range


@dataclass(frozen=True)
class TextEdit:
    """Replace `range` with `new_text`. An empty range is an insert."""
    range: Range
    new_text: str

    @classmethod
    def insert(cls, position: Position, text: str) -> "TextEdit":
        return cls(Range(position, position), text)

    @classmethod
    def delete(cls, range: Range) -> "TextEdit":
        return cls(range, "")
