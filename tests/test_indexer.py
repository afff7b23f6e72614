"""Tests for incremental indexing, failures and change notifications."""

import asyncio
import os
import threading
from pathlib import Path

from mapref.config import IndexConfig
from mapref.corpus.documents import DocumentCache
from mapref.corpus.resolver import IdentifierResolver
from mapref.corpus.scanner import DocumentScanner
from mapref.index.indexer import Change, CorpusIndexer
from mapref.index.store import IndexStore


class CountingScanner(DocumentScanner):
    """Records which documents were scanned."""

    def __init__(self, layout, documents):
        super().__init__(layout, IdentifierResolver(layout, documents))
        self.scanned: list[str] = []

    def scan(self, path, text):
        self.scanned.append(Path(path).name)
        return super().scan(path, text)


def _indexer(layout, snapshot_path=None) -> tuple[CorpusIndexer, CountingScanner]:
    documents = DocumentCache()
    scanner = CountingScanner(layout, documents)
    indexer = CorpusIndexer(layout, scanner=scanner, snapshot_path=snapshot_path, documents=documents)
    return indexer, scanner


def _touch(path: Path, seconds: int = 5) -> None:
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def _ids(indexer: CorpusIndexer) -> set[str]:
    return {e.qualified_id for e in indexer.store.entities}


def test_initial_rebuild(sample_corpus, layout):
    indexer, scanner = _indexer(layout)
    report = asyncio.run(indexer.rebuild_all())

    assert (report.changed, report.unchanged, report.failed, report.removed) == (4, 0, 0, 0)
    assert sorted(scanner.scanned) == ["bicycle_rental.json", "cyclofix.json", "filters.json", "questions.json"]
    assert len(indexer.store.entities) == 11
    assert len(indexer.store.references) == 9
    assert indexer.store.last_built > 0


def test_only_modified_file_is_rescanned(sample_corpus, layout, rental_path):
    indexer, scanner = _indexer(layout)
    asyncio.run(indexer.rebuild_all())
    scanner.scanned.clear()

    _touch(rental_path)
    report = asyncio.run(indexer.rebuild_all())

    assert scanner.scanned == ["bicycle_rental.json"]
    assert report.changed == 1
    assert report.unchanged == 3


def test_force_rescans_everything(sample_corpus, layout):
    indexer, scanner = _indexer(layout)
    asyncio.run(indexer.rebuild_all())
    scanner.scanned.clear()

    report = asyncio.run(indexer.rebuild_all(force=True))
    assert report.changed == 4
    assert len(scanner.scanned) == 4


def test_parse_failure_keeps_previous_records(sample_corpus, layout, rental_path):
    indexer, _ = _indexer(layout)
    asyncio.run(indexer.rebuild_all())
    before = indexer.query.entities_in(rental_path)

    rental_path.write_text('{"id": "bicycle_rental", "tagRenderings": [', encoding="utf-8")
    _touch(rental_path)
    report = asyncio.run(indexer.rebuild_all())

    assert report.failed == 1
    assert indexer.query.entities_in(rental_path) == before

    # Still stale, so the next pass tries again
    report = asyncio.run(indexer.rebuild_all())
    assert report.failed == 1


def test_rescan_replaces_records(sample_corpus, layout, write_doc, rental_path):
    indexer, _ = _indexer(layout)
    asyncio.run(indexer.rebuild_all())

    write_doc("layers", "bicycle_rental", {"id": "bicycle_rental", "tagRenderings": [{"id": "only_one"}]})
    _touch(rental_path)
    asyncio.run(indexer.rebuild_all())

    assert [e.qualified_id for e in indexer.query.entities_in(rental_path)] == [
        "layers.bicycle_rental",
        "layers.bicycle_rental.tagRenderings.only_one",
    ]
    assert indexer.query.references_from(rental_path) == []


def test_deleted_file_is_removed_on_rebuild(sample_corpus, layout, rental_path):
    indexer, _ = _indexer(layout)
    asyncio.run(indexer.rebuild_all())

    rental_path.unlink()
    report = asyncio.run(indexer.rebuild_all())

    assert report.removed == 1
    assert "layers.bicycle_rental" not in _ids(indexer)
    assert layout.key(rental_path) not in indexer.store.files()


def test_apply_change_deleted(sample_corpus, layout, rental_path):
    indexer, _ = _indexer(layout)
    asyncio.run(indexer.rebuild_all())

    asyncio.run(indexer.apply_change(rental_path, Change.DELETED))
    assert not any(e.file == layout.key(rental_path) for e in indexer.store.entities)


def test_apply_change_created(sample_corpus, layout, write_doc):
    indexer, scanner = _indexer(layout)
    asyncio.run(indexer.rebuild_all())
    scanner.scanned.clear()

    path = write_doc("layers", "cafe", {"id": "cafe", "tagRenderings": ["name", {"id": "coffee"}]})
    asyncio.run(indexer.apply_change(path, "created"))

    assert scanner.scanned == ["cafe.json"]
    assert "layers.cafe.tagRenderings.coffee" in _ids(indexer)
    usages = indexer.query.references_to("layers.questions.tagRenderings.name")
    assert {ref.source.qualified_id for ref in usages} == {"layers.bicycle_rental", "layers.cafe"}


def test_ineligible_change_is_ignored(sample_corpus, layout, write_doc):
    indexer, scanner = _indexer(layout)
    path = write_doc("layers", "favourite", {"id": "favourite", "tagRenderings": [{"id": "x"}]})
    asyncio.run(indexer.apply_change(path, Change.CHANGED))
    assert scanner.scanned == []
    assert indexer.store.files() == []


def test_newer_change_cancels_in_flight_scan(sample_corpus, layout, rental_path):
    indexer, scanner = _indexer(layout)

    async def _run():
        await asyncio.gather(
            indexer.apply_change(rental_path, Change.CHANGED),
            indexer.apply_change(rental_path, Change.CHANGED),
        )

    asyncio.run(_run())
    assert scanner.scanned == ["bicycle_rental.json"]
    assert "layers.bicycle_rental" in _ids(indexer)


def test_snapshot_is_restored(sample_corpus, layout):
    snapshot = sample_corpus / ".cache" / "mapref-index.json"
    indexer, _ = _indexer(layout, snapshot_path=snapshot)
    asyncio.run(indexer.rebuild_all())
    assert snapshot.exists()

    reopened = CorpusIndexer.open(sample_corpus, IndexConfig())
    assert _ids(reopened) == _ids(indexer)
    report = asyncio.run(reopened.rebuild_all())
    assert (report.changed, report.unchanged) == (0, 4)


def test_refresh_starts_over(sample_corpus, layout):
    indexer, _ = _indexer(layout)
    indexer.store.replace_file("/stale/file.json", [], [], mtime=1)

    report = asyncio.run(indexer.refresh())
    assert report.changed == 4
    assert "/stale/file.json" not in indexer.store.files()


def test_close_persists(sample_corpus, layout, tmp_path):
    snapshot = tmp_path / "snap.json"
    indexer, _ = _indexer(layout, snapshot_path=snapshot)
    asyncio.run(indexer.close())
    assert IndexStore.load(snapshot).files() == []
    assert snapshot.exists()


class GatedScanner(CountingScanner):
    """Holds the scan of one document until another document has been scanned."""

    def __init__(self, layout, documents, held: str, release: str):
        super().__init__(layout, documents)
        self.held = held
        self.release = release
        self.started = threading.Event()
        self.gate = threading.Event()
        self.threads: set[int] = set()

    def scan(self, path, text):
        self.threads.add(threading.get_ident())
        name = Path(path).name
        if name == self.held:
            self.started.set()
            self.gate.wait(timeout=5)
        result = super().scan(path, text)
        if name == self.release:
            self.gate.set()
        return result


def test_file_created_during_rebuild_survives(sample_corpus, layout, write_doc, rental_path):
    documents = DocumentCache()
    scanner = GatedScanner(layout, documents, held="bicycle_rental.json", release="cafe.json")
    indexer = CorpusIndexer(layout, scanner=scanner, documents=documents)

    async def _run():
        rebuild = asyncio.create_task(indexer.rebuild_all())
        # The listing is done once the held scan has started
        assert await asyncio.to_thread(scanner.started.wait, 5)
        cafe = write_doc("layers", "cafe", {"id": "cafe", "tagRenderings": [{"id": "coffee"}]})
        await indexer.apply_change(cafe, Change.CREATED)
        return cafe, await rebuild

    cafe, report = asyncio.run(_run())

    assert report.removed == 0
    assert report.changed == 4
    assert layout.key(cafe) in indexer.store.files()
    assert "layers.cafe.tagRenderings.coffee" in _ids(indexer)
    assert "layers.bicycle_rental" in _ids(indexer)


def test_scans_run_off_the_event_loop_thread(sample_corpus, layout):
    documents = DocumentCache()
    scanner = GatedScanner(layout, documents, held="", release="")
    indexer = CorpusIndexer(layout, scanner=scanner, documents=documents)

    asyncio.run(indexer.rebuild_all())

    assert len(scanner.scanned) == 4
    assert threading.get_ident() not in scanner.threads


def test_file_removed_from_eligibility_is_swept(sample_corpus, layout, rental_path):
    indexer, _ = _indexer(layout)
    asyncio.run(indexer.rebuild_all())

    layout.excluded_layers = set(layout.excluded_layers) | {"bicycle_rental"}
    report = asyncio.run(indexer.rebuild_all())

    assert report.removed == 1
    assert layout.key(rental_path) not in indexer.store.files()
