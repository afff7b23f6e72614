"""Read-only queries over the index store."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from ..corpus.jsonpath import JsonDocument, parse_path
from ..corpus.layout import CorpusLayout
from ..models import Anchor, Entity, Kind, Position, Reference
from .store import IndexStore


@dataclass(frozen=True)
class EntityMatch:
    """An entity plus how a document would refer to it."""

    entity: Entity
    shared: bool  # lives in the kind's shared pool layer
    token: str  # e.g. "name" for the shared pool, "bicycle_rental.name" otherwise


class QueryEngine:
    """Answers entity, definition and usage queries from the in-memory store."""

    def __init__(self, store: IndexStore, layout: CorpusLayout):
        self.store = store
        self.layout = layout

    def _token_for(self, entity: Entity) -> tuple[bool, str]:
        parts = entity.qualified_id.split(".", 3)
        if entity.kind is Kind.LAYER or len(parts) < 4:
            return False, parts[1] if len(parts) > 1 else entity.qualified_id
        layer_id, local_id = parts[1], parts[3]
        if layer_id == self.layout.pool_layer(entity.kind):
            return True, local_id
        return False, f"{layer_id}.{local_id}"

    def entities_of(self, kind: Kind | str) -> list[EntityMatch]:
        """All concrete entities of a kind, shared-pool entries first."""
        kind = Kind(kind)
        matches = []
        for entity in self.store.entities:
            if entity.kind is not kind:
                continue
            shared, token = self._token_for(entity)
            matches.append(EntityMatch(entity, shared, token))
        matches.sort(key=lambda m: (not m.shared, m.token, m.entity.file))
        return matches

    def entities_in(self, document: Path | str) -> list[Entity]:
        return list(self.store.records_for(self.layout.key(document)).entities)

    def references_from(self, document: Path | str) -> list[Reference]:
        return list(self.store.records_for(self.layout.key(document)).references)

    def resolve_at(self, document: Path | str, path: str | Sequence[str | int]) -> list[Anchor]:
        """Definition locations for the reference recorded at ``path`` in ``document``."""
        json_path = parse_path(path)
        return [
            ref.target
            for ref in self.references_from(document)
            if ref.resolved and ref.source.path == json_path
        ]

    def definition_at(self, document: Path | str, text: str, position: Position) -> list[Anchor]:
        """Definition locations for the use site under a cursor."""
        path = JsonDocument(text).path_at_position(position)
        return self.resolve_at(document, path)

    def references_to(self, qualified_id: str) -> list[Reference]:
        """Every reference whose target is ``qualified_id`` (find usages)."""
        return [ref for ref in self.store.references if ref.target.qualified_id == qualified_id]

    def unresolved(self, document: Path | str | None = None) -> list[Reference]:
        """References whose target could not be found."""
        refs = self.store.references if document is None else self.references_from(document)
        return [ref for ref in refs if not ref.resolved]
