"""Tests for corpus layout and .mapref.yml configuration."""

from pathlib import Path

import pytest

from mapref.config import CONFIG_FILENAME, ConfigError, IndexConfig, load_config, parse_config
from mapref.corpus.layout import CorpusLayout, Role


def test_role_and_name(layout: CorpusLayout):
    theme = layout.root / "assets" / "themes" / "cyclofix" / "cyclofix.json"
    layer = layout.root / "assets" / "layers" / "cafe" / "cafe.json"
    assert layout.role_of(theme) is Role.THEME
    assert layout.role_of(layer) is Role.LAYER
    assert layout.document_name(layer) == "cafe"
    assert layout.role_of(layout.root / "assets" / "layers" / "cafe" / "other.json") is None


def test_eligibility(layout: CorpusLayout):
    assets = layout.root / "assets"
    assert layout.is_eligible(assets / "layers" / "cafe" / "cafe.json")
    assert not layout.is_eligible(assets / "layers" / "favourite" / "favourite.json")
    assert not layout.is_eligible(assets / "layers" / "cafe" / "cafe.proto.json")
    assert not layout.is_eligible(assets / "themes" / "license_info" / "license_info.json")
    assert not layout.is_eligible(assets / "layers" / "cafe" / "notes.txt")


def test_iter_files_is_sorted_and_filtered(sample_corpus: Path, write_doc, layout: CorpusLayout):
    write_doc("layers", "favourite", {"id": "favourite"})
    (sample_corpus / "assets" / "layers" / "questions" / "license_info.json").write_text("[]")
    names = [p.name for p in layout.iter_files()]
    assert names == ["bicycle_rental.json", "filters.json", "questions.json", "cyclofix.json"]


def test_unusable_layer_ids(layout: CorpusLayout):
    assert layout.layer_file("") is None
    assert layout.layer_file("..") is None
    assert layout.layer_file("a/b") is None
    assert layout.layer_file("cafe").name == "cafe.json"


def test_missing_config_gives_defaults(tmp_path: Path):
    assert load_config(tmp_path) == IndexConfig()


def test_load_config(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "tagrenderings_pool: shared_questions\n"
        "excluded_layers: [favourite, conflation]\n"
        "debounce_seconds: 0.25\n"
    )
    config = load_config(tmp_path)
    assert config.tagrenderings_pool == "shared_questions"
    assert config.excluded_layers == ["favourite", "conflation"]
    assert config.debounce_seconds == 0.25
    assert config.filters_pool == "filters"

    layout = CorpusLayout.from_config(tmp_path, config)
    assert layout.excluded_layers == {"favourite", "conflation"}


def test_empty_config_file(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("")
    assert load_config(tmp_path) == IndexConfig()


@pytest.mark.parametrize(
    "data",
    [
        {"unknown_key": 1},
        {"debounce_seconds": -1},
        {"debounce_seconds": True},
        {"tagrenderings_pool": ""},
        {"excluded_files": [1, 2]},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_config(data):
    with pytest.raises(ConfigError):
        parse_config(data)


def test_invalid_yaml(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("excluded_layers: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(tmp_path)
