"""
In-memory index of entities and references, replaced file by file.

Every record belongs to exactly one file (the document it was scanned from).
A file's records are only ever swapped as a whole, so at most one generation
of records per file exists at any time.

Snapshot layout (JSON):

    {
      "format": "mapref-index",
      "version": 1,
      "timestamp": 1700000000.0,
      "items": [<entity or reference dicts>],
      "files": {"/abs/path.json": <mtime_ns>}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from ..models import Entity, Reference

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "mapref-index"
SNAPSHOT_VERSION = 1


class SnapshotError(ValueError):
    """Raised when a snapshot cannot be decoded."""


@dataclass
class FileRecords:
    """One generation of records for one file."""

    entities: list[Entity] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)


class IndexStore:
    """Entities and references grouped by file, with per-file modification times."""

    def __init__(self) -> None:
        self.last_built: float = 0.0
        self.file_timestamps: dict[str, int] = {}
        self._records: dict[str, FileRecords] = {}

    @property
    def entities(self) -> list[Entity]:
        return [entity for records in self._records.values() for entity in records.entities]

    @property
    def references(self) -> list[Reference]:
        return [ref for records in self._records.values() for ref in records.references]

    def files(self) -> list[str]:
        """Every file the store knows about (records or timestamp)."""
        return sorted(set(self._records) | set(self.file_timestamps))

    def records_for(self, file: str) -> FileRecords:
        return self._records.get(file, FileRecords())

    def is_stale(self, file: str, mtime: int) -> bool:
        """Whether a file's on-disk mtime is newer than what was indexed."""
        indexed = self.file_timestamps.get(file)
        return indexed is None or indexed < mtime

    def replace_file(
        self,
        file: str,
        entities: Iterable[Entity],
        references: Iterable[Reference],
        mtime: int,
    ) -> None:
        """Drop every record of ``file`` and insert the new generation."""
        new_entities = list(entities)
        new_references = list(references)
        for entity in new_entities:
            if entity.file != file:
                raise ValueError(f"Entity {entity.qualified_id} belongs to {entity.file}, not {file}")
        for ref in new_references:
            if ref.file != file:
                raise ValueError(f"Reference {ref.token} belongs to {ref.file}, not {file}")

        self._records[file] = FileRecords(new_entities, new_references)
        self.file_timestamps[file] = mtime

    def remove_file(self, file: str) -> bool:
        """Drop every record of ``file``. Returns whether anything was stored."""
        had_records = self._records.pop(file, None) is not None
        had_timestamp = self.file_timestamps.pop(file, None) is not None
        return had_records or had_timestamp

    def clear(self) -> None:
        self._records.clear()
        self.file_timestamps.clear()
        self.last_built = 0.0

    def to_dict(self) -> dict[str, Any]:
        items: list[dict[str, Any]] = []
        for file in sorted(self._records):
            records = self._records[file]
            items.extend(entity.to_dict() for entity in records.entities)
            items.extend(ref.to_dict() for ref in records.references)
        return {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "timestamp": self.last_built,
            "items": items,
            "files": dict(sorted(self.file_timestamps.items())),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "IndexStore":
        """Decode a snapshot; raises SnapshotError for anything unexpected."""
        if not isinstance(data, dict):
            raise SnapshotError("snapshot is not an object")
        if data.get("format") != SNAPSHOT_FORMAT or data.get("version") != SNAPSHOT_VERSION:
            raise SnapshotError(f"unsupported snapshot format {data.get('format')!r} v{data.get('version')!r}")

        items = data.get("items")
        files = data.get("files")
        if not isinstance(items, list) or not isinstance(files, dict):
            raise SnapshotError("snapshot items/files missing")

        store = cls()
        try:
            store.last_built = float(data.get("timestamp", 0.0))
            for file, mtime in files.items():
                store.file_timestamps[str(file)] = int(mtime)
            for item in items:
                if item.get("type") == "reference":
                    ref = Reference.from_dict(item)
                    store._records.setdefault(ref.file, FileRecords()).references.append(ref)
                else:
                    entity = Entity.from_dict(item)
                    store._records.setdefault(entity.file, FileRecords()).entities.append(entity)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"corrupt snapshot item: {e}") from e
        return store

    def persist(self, path: Path) -> None:
        """Write the snapshot atomically (write to temp, then rename)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        temp_path.write_text(json.dumps(self.to_dict()), encoding="utf-8")
        temp_path.replace(path)

    @classmethod
    def load(cls, path: Path) -> "IndexStore":
        """Load a snapshot, starting empty when it is missing or unusable."""
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls.from_dict(data)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, SnapshotError) as e:
            logger.warning("Discarding index snapshot %s: %s", path, e)
            return cls()
