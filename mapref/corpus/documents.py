"""Cache of parsed target documents (shared pools, referenced layers)."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .jsonpath import JsonDocument

logger = logging.getLogger(__name__)


class DocumentCache:
    """Parsed documents keyed by path, reparsed when the modification time moves.

    Missing and invalid documents are cached as None so a broken shared pool
    is reported once per modification, not once per reference. Scans call
    ``get`` from worker threads.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[int, JsonDocument | None]] = {}
        self._lock = threading.Lock()

    def get(self, path: Path) -> JsonDocument | None:
        """Return the parsed document, or None if missing or not valid JSON."""
        key = str(path.resolve())
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            with self._lock:
                self._entries.pop(key, None)
            logger.info("Target document not found: %s", path)
            return None

        with self._lock:
            cached = self._entries.get(key)
        if cached is not None and cached[0] == mtime:
            return cached[1]

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read target document %s: %s", path, e)
            return None

        document: JsonDocument | None = JsonDocument(text)
        if not document.valid:
            logger.warning("Target document %s is not valid JSON: %s", path, document.errors[:1])
            document = None
        with self._lock:
            self._entries[key] = (mtime, document)
        return document

    def invalidate(self, path: Path | str) -> None:
        with self._lock:
            self._entries.pop(str(Path(path).resolve()), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
