"""
Keeps the index store in step with the corpus on disk.

Scans run as asyncio tasks. Disk access and parsing happen in worker threads,
and every store mutation (``replace_file``/``remove_file``) happens back on
the event loop in one synchronous step. Scans of different files therefore
never conflict, and for the same file the last scan to finish wins. A newer
event for a path cancels the in-flight scan of that path, which then leaves
no trace.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..config import IndexConfig, load_config
from ..corpus.documents import DocumentCache
from ..corpus.jsonpath import JsonParseError
from ..corpus.layout import CorpusLayout
from ..corpus.resolver import IdentifierResolver
from ..corpus.scanner import DocumentScanner
from .query import QueryEngine
from .store import IndexStore

logger = logging.getLogger(__name__)


class Change(str, Enum):
    """File change notifications understood by the indexer."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass
class RebuildReport:
    """Outcome of one pass over the corpus."""

    changed: int = 0
    unchanged: int = 0
    failed: int = 0
    removed: int = 0

    @property
    def total(self) -> int:
        return self.changed + self.unchanged + self.failed


class CorpusIndexer:
    """Owns the index store for one corpus and feeds it scans."""

    def __init__(
        self,
        layout: CorpusLayout,
        store: IndexStore | None = None,
        scanner: DocumentScanner | None = None,
        snapshot_path: Path | None = None,
        documents: DocumentCache | None = None,
    ):
        self.layout = layout
        self.store = store or IndexStore()
        self.documents = documents or DocumentCache()
        self.scanner = scanner or DocumentScanner(layout, IdentifierResolver(layout, self.documents))
        self.snapshot_path = snapshot_path
        self.query = QueryEngine(self.store, layout)
        self._inflight: dict[str, asyncio.Task[bool]] = {}

    @classmethod
    def open(cls, root: Path, config: IndexConfig | None = None) -> "CorpusIndexer":
        """Create an indexer for ``root``, restoring the persisted snapshot."""
        config = config or load_config(root)
        layout = CorpusLayout.from_config(root, config)
        snapshot_path = root / config.snapshot
        return cls(layout, IndexStore.load(snapshot_path), snapshot_path=snapshot_path)

    def persist(self) -> None:
        if self.snapshot_path is None:
            return
        try:
            self.store.persist(self.snapshot_path)
        except OSError as e:
            logger.warning("Failed to save index snapshot %s: %s", self.snapshot_path, e)

    async def scan_file(self, path: Path) -> bool:
        """Rescan one document and replace its records.

        Returns False (leaving prior records untouched) when the file cannot
        be read or is not valid JSON.
        """
        path = Path(path)
        if not self.layout.is_eligible(path):
            logger.debug("Ignoring %s", path)
            return False
        key = self.layout.key(path)

        try:
            # Take the mtime before reading so a concurrent edit is seen as newer
            stat = await asyncio.to_thread(path.stat)
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            self.store.remove_file(key)
            return False
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            return False

        try:
            result = await asyncio.to_thread(self.scanner.scan, path, text)
        except JsonParseError as e:
            logger.warning("Keeping previous index for %s, not valid JSON: %s", path, e)
            return False

        self.store.replace_file(key, result.entities, result.references, stat.st_mtime_ns)
        self.documents.invalidate(path)
        return True

    def _schedule(self, path: Path) -> asyncio.Task[bool]:
        key = self.layout.key(path)
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.debug("Superseding in-flight scan of %s", path)
            previous.cancel()

        task = asyncio.create_task(self.scan_file(path))
        self._inflight[key] = task

        def _forget(done: asyncio.Task[bool]) -> None:
            if self._inflight.get(key) is done:
                del self._inflight[key]

        task.add_done_callback(_forget)
        return task

    def _list_files(self) -> list[tuple[Path, int | None]]:
        """Eligible documents with their mtimes (None when the stat failed)."""
        listed: list[tuple[Path, int | None]] = []
        for path in self.layout.iter_files():
            try:
                listed.append((path, path.stat().st_mtime_ns))
            except OSError:
                listed.append((path, None))
        return listed

    def _vanished(self, files: list[str]) -> list[str]:
        """Indexed files that are gone from disk or no longer eligible."""
        return [file for file in files if not self.layout.is_eligible(file) or not Path(file).is_file()]

    async def rebuild_all(self, force: bool = False) -> RebuildReport:
        """Scan every eligible document whose mtime moved (or all, with ``force``)."""
        report = RebuildReport()
        listed = await asyncio.to_thread(self._list_files)

        seen: set[str] = set()
        tasks: list[tuple[Path, asyncio.Task[bool]]] = []
        for path, mtime in listed:
            key = self.layout.key(path)
            seen.add(key)
            if mtime is None:
                continue
            if force or self.store.is_stale(key, mtime):
                logger.debug("File has changed: %s (indexed %s)", path, self.store.file_timestamps.get(key))
                tasks.append((path, self._schedule(path)))
            else:
                report.unchanged += 1

        if tasks:
            await asyncio.wait([task for _, task in tasks])
        for path, task in tasks:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error("Scan of %s failed", path, exc_info=error)
                report.failed += 1
            elif task.result():
                report.changed += 1
            else:
                report.failed += 1

        # Unlisted files still on disk were created while the pass ran
        unlisted = [file for file in self.store.files() if file not in seen]
        if unlisted:
            for file in await asyncio.to_thread(self._vanished, unlisted):
                if self.store.remove_file(file):
                    report.removed += 1

        self.store.last_built = time.time()
        self.persist()
        logger.info(
            "Scanned corpus: %d changed files, %d unchanged files, %d failed, %d removed",
            report.changed,
            report.unchanged,
            report.failed,
            report.removed,
        )
        return report

    async def apply_change(self, path: Path, change: Change | str) -> None:
        """Apply one change notification and persist."""
        path = Path(path)
        change = Change(change)
        if change is Change.DELETED:
            key = self.layout.key(path)
            task = self._inflight.pop(key, None)
            if task is not None:
                task.cancel()
            self.store.remove_file(key)
            self.documents.invalidate(path)
        else:
            task = self._schedule(path)
            await asyncio.wait([task])
            if not task.cancelled() and task.exception() is not None:
                logger.error("Scan of %s failed", path, exc_info=task.exception())
        self.persist()

    async def refresh(self) -> RebuildReport:
        """Forget everything and rebuild from scratch."""
        self.store.clear()
        self.documents.clear()
        return await self.rebuild_all(force=True)

    async def close(self) -> None:
        """Let in-flight scans finish, then flush the snapshot."""
        pending = [task for task in self._inflight.values() if not task.done()]
        if pending:
            await asyncio.wait(pending)
        self.persist()
