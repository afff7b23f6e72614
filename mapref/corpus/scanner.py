"""
Document scanning: extract entities and outgoing references from one document.

A theme's ``layers`` entries and a layer's ``tagRenderings``/``filter``
entries share one shape vocabulary, decided per entry by ``classify_entry``:

- "id"                       -> PlainReference
- {"builtin": "id", ...}     -> BuiltinSingle
- {"builtin": ["a", "b"]}    -> BuiltinMany
- {...}                      -> InlineDefinition
- anything else              -> Malformed (skipped)

Inline layers embedded in a theme are scanned with the same layer logic,
through a ScanContext carrying the theme's text, the path prefix of the
inline layer and ``references_only``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from ..models import Anchor, Entity, JsonPath, Kind, Reference
from .jsonpath import JsonDocument, format_path
from .layout import CorpusLayout, Role
from .resolver import IdentifierResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlainReference:
    token: str


@dataclass(frozen=True)
class BuiltinSingle:
    token: str


@dataclass(frozen=True)
class BuiltinMany:
    tokens: tuple[Any, ...]


@dataclass(frozen=True)
class InlineDefinition:
    body: dict


@dataclass(frozen=True)
class Malformed:
    reason: str


Entry = Union[PlainReference, BuiltinSingle, BuiltinMany, InlineDefinition, Malformed]


def classify_entry(value: Any) -> Entry:
    """Decide what a layers/tagRenderings/filter list entry is."""
    if isinstance(value, str):
        return PlainReference(value)
    if isinstance(value, dict):
        builtin = value.get("builtin")
        if builtin is None:
            return InlineDefinition(value)
        if isinstance(builtin, str):
            return BuiltinSingle(builtin)
        if isinstance(builtin, list):
            return BuiltinMany(tuple(builtin))
        return Malformed(f"builtin must be a string or a list, not {type(builtin).__name__}")
    return Malformed(f"unexpected {type(value).__name__} entry")


def section_of(key: str) -> str | None:
    """Map a layer key to its section, ignoring merge marks ("tagRenderings+")."""
    stripped = key.strip("+")
    if stripped in ("tagRenderings", "filter"):
        return stripped
    return None


def has_computed_source(body: dict) -> bool:
    """Layers with a special or geoJson source cannot supply reusable entries."""
    source = body.get("source")
    if source == "special":
        return True
    return isinstance(source, dict) and bool(source.get("geoJson"))


@dataclass(frozen=True)
class ScanContext:
    """Where a (possibly embedded) layer body sits in the document being scanned."""

    file: str
    source_id: str  # qualified id references are made from
    document: JsonDocument  # the full document actually open in an editor
    prefix: JsonPath = ()
    references_only: bool = False
    layer_id: str | None = None  # owning layer for entity ids

    def child(self, *segments: str | int, **changes: Any) -> "ScanContext":
        return replace(self, prefix=self.prefix + segments, **changes)

    def anchor(self, path: JsonPath) -> Anchor:
        return Anchor(self.source_id, self.file, path, self.document.locate(path))


@dataclass
class ScanResult:
    """Records produced by scanning one document."""

    entities: list[Entity] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # diagnostics for malformed entries


class DocumentScanner:
    """Extracts Entity and Reference records from theme and layer documents."""

    def __init__(self, layout: CorpusLayout, resolver: IdentifierResolver | None = None):
        self.layout = layout
        self.resolver = resolver or IdentifierResolver(layout)

    def scan(self, path: Path, text: str) -> ScanResult:
        """Scan a document's text.

        Raises JsonParseError when the text is not valid JSON; a malformed
        entry is skipped and reported in ``ScanResult.skipped`` instead.
        """
        result = ScanResult()
        role = self.layout.role_of(path)
        if role is None:
            logger.debug("Not a corpus document: %s", path)
            return result

        document = JsonDocument(text)
        body = document.value
        if not isinstance(body, dict):
            self._skip(result, f"{path}: top-level value is not an object")
            return result

        file_key = self.layout.key(path)
        name = self.layout.document_name(path) or path.stem
        if role is Role.THEME:
            theme_id = body.get("id") if isinstance(body.get("id"), str) else name
            context = ScanContext(file_key, f"themes.{theme_id}", document)
            self._scan_theme(context, body, result)
        else:
            context = ScanContext(file_key, f"layers.{name}", document, layer_id=name)
            result.entities.append(Entity(f"layers.{name}", Kind.LAYER, file_key, (), document.locate(())))
            self._scan_layer(context, body, result)

        logger.debug(
            "Scanned %s: %d entities, %d references",
            path,
            len(result.entities),
            len(result.references),
        )
        return result

    def _scan_theme(self, context: ScanContext, body: dict, result: ScanResult) -> None:
        layers = body.get("layers")
        if layers is None:
            logger.debug("No layers found in %s", context.source_id)
        elif not isinstance(layers, list):
            self._skip(result, f"{context.source_id}: layers is not a list")
        else:
            for index, value in enumerate(layers):
                entry = classify_entry(value)
                inline_id = f"{context.source_id}.layers.{index}"

                if isinstance(entry, InlineDefinition):
                    logger.debug("Found inline layer %s in %s", entry.body.get("id"), context.source_id)
                    inline = context.child("layers", index, source_id=inline_id, references_only=True, layer_id=None)
                    self._scan_layer(inline, entry.body, result)
                    continue

                self._scan_entry(context, ("layers", index), entry, Kind.LAYER, result)

                # A builtin layer entry may patch the layer it reuses
                override = value.get("override") if isinstance(value, dict) else None
                if isinstance(override, dict):
                    patch = context.child("layers", index, "override", source_id=inline_id, references_only=True)
                    self._scan_layer(patch, override, result)

        override_all = body.get("overrideAll")
        if isinstance(override_all, dict):
            self._scan_layer(context.child("overrideAll", references_only=True), override_all, result)

    def _scan_layer(self, context: ScanContext, body: dict, result: ScanResult) -> None:
        if has_computed_source(body) and not context.references_only:
            logger.debug("Layer %s has a special source, only saving references", context.source_id)
            context = replace(context, references_only=True)

        for key, entries in body.items():
            section = section_of(key)
            if section is None:
                continue
            kind = Kind.TAG_RENDERING if section == "tagRenderings" else Kind.FILTER
            if not isinstance(entries, list):
                self._skip(result, f"{context.source_id}: {key} is not a list")
                continue

            for index, value in enumerate(entries):
                entry = classify_entry(value)
                local: JsonPath = (key, index)
                if isinstance(entry, InlineDefinition):
                    if not context.references_only:
                        self._define(context, local, entry.body, kind, result)
                    continue
                self._scan_entry(context, local, entry, kind, result)

    def _scan_entry(self, context: ScanContext, local: JsonPath, entry: Entry, kind: Kind, result: ScanResult) -> None:
        if isinstance(entry, PlainReference):
            self._emit(context, local, entry.token, kind, False, result)
        elif isinstance(entry, BuiltinSingle):
            self._emit(context, local + ("builtin",), entry.token, kind, True, result)
        elif isinstance(entry, BuiltinMany):
            for position, token in enumerate(entry.tokens):
                if not isinstance(token, str):
                    self._skip(result, f"{context.source_id}: non-string builtin at {format_path(context.prefix + local)}")
                    continue
                self._emit(context, local + ("builtin", position), token, kind, True, result)
        elif isinstance(entry, Malformed):
            self._skip(result, f"{context.source_id}: {entry.reason} at {format_path(context.prefix + local)}")

    def _define(self, context: ScanContext, local: JsonPath, body: dict, kind: Kind, result: ScanResult) -> None:
        entry_id = body.get("id")
        path = context.prefix + local
        if not isinstance(entry_id, str) or not entry_id:
            self._skip(result, f"{context.source_id}: {kind.value} without an id at {format_path(path)}")
            return
        qualified_id = f"layers.{context.layer_id}.{kind.section}.{entry_id}"
        logger.debug("%s %s found in %s", kind.value, qualified_id, context.source_id)
        result.entities.append(Entity(qualified_id, kind, context.file, path, context.document.locate(path)))

    def _emit(
        self,
        context: ScanContext,
        local: JsonPath,
        token: str,
        kind: Kind,
        builtin: bool,
        result: ScanResult,
    ) -> None:
        path = context.prefix + local
        if not token:
            self._skip(result, f"{context.source_id}: empty {kind.value} reference at {format_path(path)}")
            return

        source = context.anchor(path)
        address = self.resolver.address(token, kind, builtin)
        targets = self.resolver.resolve(address)
        if not targets:
            logger.info("Unresolved %s reference %r in %s", kind.value, token, context.source_id)
            result.references.append(
                Reference(
                    source=source,
                    target=Anchor(address.qualified_id),
                    kind=kind,
                    token=token,
                    builtin=builtin,
                    resolved=False,
                )
            )
            return

        for target in targets:
            logger.debug("Reference found to %s %s in %s", kind.value, target.qualified_id, context.source_id)
            result.references.append(
                Reference(
                    source=source,
                    target=Anchor(target.qualified_id, target.file, target.path, target.range),
                    kind=kind,
                    token=token,
                    builtin=builtin,
                )
            )

    def _skip(self, result: ScanResult, message: str) -> None:
        logger.info("Skipping malformed entry: %s", message)
        result.skipped.append(message)
