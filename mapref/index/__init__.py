"""The cross-reference index: store, incremental indexer and queries."""

from .indexer import Change, CorpusIndexer, RebuildReport
from .query import EntityMatch, QueryEngine
from .store import IndexStore, SnapshotError

__all__ = [
    "Change",
    "CorpusIndexer",
    "EntityMatch",
    "IndexStore",
    "QueryEngine",
    "RebuildReport",
    "SnapshotError",
]
