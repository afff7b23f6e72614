"""Data models for indexed corpus records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

# A structural address inside a JSON document, e.g. ("layers", 0, "builtin")
JsonPath = tuple[str | int, ...]


class Kind(str, Enum):
    """Kinds of reusable definitions."""

    LAYER = "layer"
    TAG_RENDERING = "tagRendering"
    FILTER = "filter"

    @property
    def section(self) -> str | None:
        """The layer key holding entries of this kind."""
        return {
            Kind.TAG_RENDERING: "tagRenderings",
            Kind.FILTER: "filter",
        }.get(self)


@dataclass(frozen=True)
class Position:
    """Zero-based line/character position in a document."""

    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(line=int(data["line"]), character=int(data["character"]))


@dataclass(frozen=True)
class Range:
    """Source range of a JSON value, start inclusive and end exclusive."""

    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        return (self.start.line, self.start.character) <= (position.line, position.character) <= (
            self.end.line,
            self.end.character,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "Range":
        return cls(start=Position.from_dict(data["start"]), end=Position.from_dict(data["end"]))


def _path_to_list(path: JsonPath | None) -> list[str | int] | None:
    return None if path is None else list(path)


def _path_from_list(value: Any) -> JsonPath | None:
    if value is None:
        return None
    return tuple(value)


@dataclass(frozen=True)
class Anchor:
    """One endpoint of a reference: a qualified id plus its source location.

    ``file`` is None when the target document does not exist, ``range`` is None
    when the endpoint is a whole document or could not be located.
    """

    qualified_id: str
    file: str | None = None
    path: JsonPath | None = None
    range: Range | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.qualified_id}
        if self.file is not None:
            d["file"] = self.file
        if self.path is not None:
            d["path"] = _path_to_list(self.path)
        if self.range is not None:
            d["range"] = self.range.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Anchor":
        range_data = data.get("range")
        return cls(
            qualified_id=data["id"],
            file=data.get("file"),
            path=_path_from_list(data.get("path")),
            range=Range.from_dict(range_data) if range_data else None,
        )


@dataclass(frozen=True)
class Entity:
    """A concrete, reusable definition inside a document."""

    qualified_id: str
    kind: Kind
    file: str
    path: JsonPath
    range: Range | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.kind.value,
            "id": self.qualified_id,
            "file": self.file,
            "path": list(self.path),
        }
        if self.range is not None:
            d["range"] = self.range.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Entity":
        range_data = data.get("range")
        return cls(
            qualified_id=data["id"],
            kind=Kind(data["type"]),
            file=data["file"],
            path=tuple(data.get("path", [])),
            range=Range.from_dict(range_data) if range_data else None,
        )


@dataclass(frozen=True)
class Reference:
    """A directed edge from a use site to a definition site."""

    source: Anchor  # where the item is used, e.g. themes.cyclofix
    target: Anchor  # where the item is defined, e.g. layers.bicycle_rental
    kind: Kind
    token: str  # the raw reference text as written in the document
    builtin: bool = False
    resolved: bool = True

    @property
    def file(self) -> str:
        return self.source.file or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "reference",
            "id": self.token,
            "file": self.file,
            "reference": {
                "from": self.source.to_dict(),
                "to": self.target.to_dict(),
                "type": self.kind.value,
                "builtin": self.builtin,
                "resolved": self.resolved,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Reference":
        ref = data["reference"]
        return cls(
            source=Anchor.from_dict(ref["from"]),
            target=Anchor.from_dict(ref["to"]),
            kind=Kind(ref["type"]),
            token=data["id"],
            builtin=bool(ref.get("builtin", False)),
            resolved=bool(ref.get("resolved", True)),
        )
