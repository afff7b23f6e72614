"""Smoke tests for the mapref command line."""

import json
from pathlib import Path

from click.testing import CliRunner

from mapref.cli import _auto_detect_root, cli


def _invoke(root: Path, *args: str):
    return CliRunner().invoke(cli, ["--root", str(root), *args])


def test_index_writes_snapshot(sample_corpus):
    result = _invoke(sample_corpus, "index")
    assert result.exit_code == 0, result.output
    assert (sample_corpus / ".cache" / "mapref-index.json").exists()


def test_index_reports_failures(sample_corpus, write_doc):
    write_doc("layers", "broken", '{"id": "broken",')
    result = _invoke(sample_corpus, "index")
    assert result.exit_code == 1


def test_entities_json(sample_corpus):
    result = _invoke(sample_corpus, "entities", "tagRendering", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [item["token"] for item in data][:3] == ["name", "opening_hours", "phone"]
    assert data[0]["shared"] is True
    assert data[0]["path"] == "tagRenderings.0"


def test_entities_table(sample_corpus):
    result = _invoke(sample_corpus, "entities", "filter")
    assert result.exit_code == 0, result.output
    assert "open_now" in result.output


def test_refs_json(sample_corpus):
    result = _invoke(sample_corpus, "refs", "layers.questions.tagRenderings.phone", "--json")
    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [item["reference"]["from"]["id"] for item in data] == ["themes.cyclofix.layers.1"]


def test_refs_without_usages(sample_corpus):
    result = _invoke(sample_corpus, "refs", "layers.questions.tagRenderings.nothing")
    assert result.exit_code == 1


def test_resolve(sample_corpus, theme_path):
    result = _invoke(sample_corpus, "resolve", str(theme_path), "layers.1.override.tagRenderings.0")
    assert result.exit_code == 0, result.output
    assert "layers.questions.tagRenderings.phone" in result.output


def test_resolve_nothing_there(sample_corpus, theme_path):
    result = _invoke(sample_corpus, "resolve", str(theme_path), "id")
    assert result.exit_code == 1


def test_check(sample_corpus):
    assert _invoke(sample_corpus, "check").exit_code == 0
    assert _invoke(sample_corpus, "check", "--fail").exit_code == 1


def test_check_clean_corpus(corpus_root, write_doc):
    write_doc("layers", "questions", {"id": "questions", "tagRenderings": [{"id": "name"}]})
    result = _invoke(corpus_root, "check", "--fail")
    assert result.exit_code == 0, result.output


def test_bad_config(sample_corpus):
    (sample_corpus / ".mapref.yml").write_text("unknown: 1\n")
    result = _invoke(sample_corpus, "index")
    assert result.exit_code != 0
    assert "unknown" in result.output


def test_missing_root(tmp_path):
    result = CliRunner().invoke(cli, ["--root", str(tmp_path / "nope"), "index"])
    assert result.exit_code != 0


def test_auto_detect_root(sample_corpus):
    nested = sample_corpus / "assets" / "layers" / "questions"
    assert _auto_detect_root(nested) == sample_corpus.resolve()
