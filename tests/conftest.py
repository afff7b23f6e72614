"""Pytest configuration and fixtures."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from mapref.corpus.layout import CorpusLayout

QUESTIONS = {
    "id": "questions",
    "tagRenderings": [
        {"id": "name", "labels": ["contact"]},
        {"id": "phone", "labels": ["contact"]},
        {"id": "opening_hours"},
    ],
}

FILTERS = {
    "id": "filters",
    "filter": [{"id": "open_now"}, {"id": "accepts_cards"}],
}

BICYCLE_RENTAL = {
    "id": "bicycle_rental",
    "source": {"osmTags": "amenity=bicycle_rental"},
    "tagRenderings": [
        "name",
        {"builtin": "opening_hours"},
        {"id": "rental_types", "labels": ["rental"]},
        {"id": "bike_count"},
    ],
    "filter": ["open_now", {"id": "rental_kind"}],
}

CYCLOFIX = {
    "id": "cyclofix",
    "layers": [
        "bicycle_rental",
        {"builtin": ["bicycle_rental", "missing_layer"], "override": {"tagRenderings": ["phone"]}},
        {"id": "inline_layer", "tagRenderings": ["bicycle_rental.rental_types", {"id": "inline_only"}]},
    ],
    "overrideAll": {"filter": ["accepts_cards"]},
}


@pytest.fixture
def corpus_root(tmp_path: Path) -> Path:
    """An empty corpus root with an assets/ folder."""
    root = tmp_path / "corpus"
    (root / "assets").mkdir(parents=True)
    return root


@pytest.fixture
def write_doc(corpus_root: Path) -> Callable[[str, str, Any], Path]:
    """Write assets/<kind>/<name>/<name>.json; ``data`` is dumped unless it is already text."""

    def _write(kind: str, name: str, data: Any) -> Path:
        path = corpus_root / "assets" / kind / name / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def layout(corpus_root: Path) -> CorpusLayout:
    return CorpusLayout(corpus_root)


@pytest.fixture
def sample_corpus(corpus_root: Path, write_doc) -> Path:
    """Shared pools, one layer and one theme referencing them."""
    write_doc("layers", "questions", QUESTIONS)
    write_doc("layers", "filters", FILTERS)
    write_doc("layers", "bicycle_rental", BICYCLE_RENTAL)
    write_doc("themes", "cyclofix", CYCLOFIX)
    return corpus_root


@pytest.fixture
def theme_path(sample_corpus: Path) -> Path:
    return sample_corpus / "assets" / "themes" / "cyclofix" / "cyclofix.json"


@pytest.fixture
def rental_path(sample_corpus: Path) -> Path:
    return sample_corpus / "assets" / "layers" / "bicycle_rental" / "bicycle_rental.json"
