"""
Identifier resolution: from a reference token to candidate definitions.

Token forms:
- bare id ("name"): a layer, or an entry of the kind's shared pool layer
- dotted id ("bicycle_rental.name"): an entry of the named layer
- wildcard ("bicycle_rental.*_name"): every entry whose id or label matches
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from ..models import JsonPath, Kind, Range
from .documents import DocumentCache
from .layout import CorpusLayout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Address:
    """Where a token points, before looking inside the target document."""

    kind: Kind
    token: str
    layer_id: str
    local_id: str | None = None  # None for layer references
    builtin: bool = False

    @property
    def qualified_id(self) -> str:
        """Nominal target id, as written (wildcards included)."""
        if self.kind is Kind.LAYER or self.local_id is None:
            return f"layers.{self.layer_id}"
        return f"layers.{self.layer_id}.{self.kind.section}.{self.local_id}"

    def with_local_id(self, local_id: str) -> str:
        return f"layers.{self.layer_id}.{self.kind.section}.{local_id}"


@dataclass(frozen=True)
class Target:
    """A concrete definition a token resolved to."""

    qualified_id: str
    file: str
    path: JsonPath
    range: Range | None = None


def is_wildcard(identifier: str) -> bool:
    return "*" in identifier


def wildcard_pattern(identifier: str) -> re.Pattern[str]:
    """Regex for the final dotted segment, with ``*`` matching any run of characters.

    Callers match it against the whole id or label with ``fullmatch``, so
    ``*_name`` accepts ``first_name`` but not ``first_name_x``. A substring
    search would accept both.
    """
    segment = identifier.rsplit(".", 1)[-1]
    return re.compile(".*".join(re.escape(part) for part in segment.split("*")))


def _entry_id(entry: Any) -> str | None:
    if isinstance(entry, dict) and isinstance(entry.get("id"), str):
        return entry["id"]
    return None


def _entry_labels(entry: Any) -> list[str]:
    if not isinstance(entry, dict):
        return []
    labels = entry.get("labels")
    if not isinstance(labels, list):
        return []
    return [label for label in labels if isinstance(label, str)]


def match_entries(entries: list[Any], identifier: str, use_labels: bool = True) -> list[tuple[int, str]]:
    """Find the entries an identifier refers to.

    Returns ``(index, id)`` pairs, at most one per entry. Id matches come
    first, then label matches; an entry matching both is reported once.
    A plain identifier matches the first entry with that id, and only falls
    back to labels when no id matches.
    """
    hits: list[int] = []
    if is_wildcard(identifier):
        pattern = wildcard_pattern(identifier)
        for i, entry in enumerate(entries):
            entry_id = _entry_id(entry)
            if entry_id is not None and pattern.fullmatch(entry_id):
                hits.append(i)
        if use_labels:
            hits.extend(
                i
                for i, entry in enumerate(entries)
                if any(pattern.fullmatch(label) for label in _entry_labels(entry))
            )
    else:
        for i, entry in enumerate(entries):
            if _entry_id(entry) == identifier:
                hits.append(i)
                break
        if not hits and use_labels:
            hits.extend(i for i, entry in enumerate(entries) if identifier in _entry_labels(entry))

    result: list[tuple[int, str]] = []
    seen: set[int] = set()
    for index in hits:
        entry_id = _entry_id(entries[index])
        if index in seen or entry_id is None:
            continue
        seen.add(index)
        result.append((index, entry_id))
    return result


class IdentifierResolver:
    """Resolves reference tokens against the corpus on disk."""

    def __init__(self, layout: CorpusLayout, documents: DocumentCache | None = None):
        self.layout = layout
        self.documents = documents or DocumentCache()

    def address(self, token: str, kind: Kind, builtin: bool = False) -> Address:
        """Compute the candidate document and local id for a token."""
        if kind is Kind.LAYER:
            return Address(kind, token, layer_id=token, builtin=builtin)
        if "." in token:
            layer_id, _, local_id = token.partition(".")
            return Address(kind, token, layer_id=layer_id, local_id=local_id, builtin=builtin)
        pool = self.layout.pool_layer(kind)
        return Address(kind, token, layer_id=pool or "", local_id=token, builtin=builtin)

    def resolve(self, address: Address) -> list[Target]:
        """Concrete targets for an address; empty when nothing matches."""
        layer_file = self.layout.layer_file(address.layer_id)
        if layer_file is None:
            return []

        if address.kind is Kind.LAYER:
            if not layer_file.is_file():
                return []
            return [Target(address.qualified_id, self.layout.key(layer_file), ())]

        document = self.documents.get(layer_file)
        if document is None:
            return []
        body = document.value
        section = address.kind.section
        entries = body.get(section) if isinstance(body, dict) else None
        if not isinstance(entries, list):
            logger.info("Layer %s has no %s list", address.layer_id, section)
            return []

        matches = match_entries(
            entries,
            address.local_id or "",
            use_labels=address.kind is Kind.TAG_RENDERING,
        )
        file_key = self.layout.key(layer_file)
        targets = []
        for index, entry_id in matches:
            path: JsonPath = (section, index)
            targets.append(Target(address.with_local_id(entry_id), file_key, path, document.locate(path)))
        return targets

    def resolve_token(self, token: str, kind: Kind, builtin: bool = False) -> list[Target]:
        return self.resolve(self.address(token, kind, builtin))
