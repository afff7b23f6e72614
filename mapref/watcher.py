"""
File system watcher that keeps the index current.

This module provides:
- Watchdog-based monitoring of the corpus assets directory
- Debounced change collection (editor save cycles collapse into one change)
- An asyncio loop that feeds drained changes to a CorpusIndexer
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .corpus.layout import CorpusLayout
from .index.indexer import Change, CorpusIndexer, RebuildReport

logger = logging.getLogger(__name__)


@dataclass
class PendingChange:
    """A change waiting out the debounce window."""

    change: Change
    path: Path
    timestamp: float


class CorpusEventHandler(FileSystemEventHandler):
    """
    Collects file system events for eligible corpus documents.

    Watchdog calls the ``on_*`` methods from its observer thread; ``drain``
    is called from the indexing loop. Both sides go through one lock.
    """

    def __init__(self, layout: CorpusLayout, debounce_seconds: float = 1.0):
        super().__init__()
        self.layout = layout
        self.debounce_seconds = debounce_seconds
        self.pending: dict[str, PendingChange] = {}
        self._lock = threading.Lock()

    def _is_relevant(self, path: str) -> bool:
        return self.layout.is_eligible(Path(path))

    def _record(self, change: Change, path: str, now: float | None = None) -> None:
        key = self.layout.key(path)
        stamp = time.time() if now is None else now
        with self._lock:
            previous = self.pending.get(key)
            if previous is not None and previous.change is Change.CREATED:
                if change is Change.DELETED:
                    # Created then deleted before flush - nothing happened
                    del self.pending[key]
                    return
                if change is Change.CHANGED:
                    change = Change.CREATED
            self.pending[key] = PendingChange(change, Path(path), stamp)

    def drain(self, now: float | None = None) -> list[tuple[Path, Change]]:
        """Remove and return the changes whose debounce window has passed."""
        now = time.time() if now is None else now
        ready: list[tuple[Path, Change]] = []
        with self._lock:
            for key, pending in list(self.pending.items()):
                if now - pending.timestamp >= self.debounce_seconds:
                    ready.append((pending.path, pending.change))
                    del self.pending[key]
        return ready

    def on_created(self, event: FileCreatedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._record(Change.CREATED, event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._record(Change.CHANGED, event.src_path)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._record(Change.DELETED, event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        if self._is_relevant(event.src_path):
            self._record(Change.DELETED, event.src_path)
        if self._is_relevant(event.dest_path):
            self._record(Change.CREATED, event.dest_path)


def watch_corpus(layout: CorpusLayout, debounce_seconds: float = 1.0) -> tuple[Observer, CorpusEventHandler]:
    """
    Start watching the corpus assets directory.

    Returns:
        Tuple of (observer, handler) - caller should call observer.stop() to stop watching
    """
    handler = CorpusEventHandler(layout, debounce_seconds)
    observer = Observer()
    observer.schedule(handler, str(layout.assets_dir), recursive=True)
    observer.start()
    return observer, handler


async def run_watch_loop(
    indexer: CorpusIndexer,
    debounce_seconds: float = 1.0,
    on_change: Callable[[Path, Change], None] | None = None,
    poll_interval: float = 0.5,
    stop: asyncio.Event | None = None,
    initial_rebuild: bool = True,
    on_ready: Callable[[RebuildReport], None] | None = None,
) -> None:
    """
    Apply debounced changes to ``indexer`` until ``stop`` is set or the task is cancelled.

    The observer starts before the initial rebuild, so edits made while the
    corpus is being scanned are queued and applied once it finishes.
    """
    observer, handler = watch_corpus(indexer.layout, debounce_seconds)
    logger.info("Watching %s", indexer.layout.assets_dir)
    try:
        if initial_rebuild:
            report = await indexer.rebuild_all()
            if on_ready:
                on_ready(report)
        while stop is None or not stop.is_set():
            await asyncio.sleep(poll_interval)
            for path, change in handler.drain():
                logger.info("%s %s", change.value.capitalize(), path)
                await indexer.apply_change(path, change)
                if on_change:
                    on_change(path, change)
    finally:
        observer.stop()
        await asyncio.to_thread(observer.join)
        await indexer.close()
