"""Corpus filesystem layout: where themes and layers live, and which files count."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator

from ..config import IndexConfig
from ..models import Kind

# assets/themes/<name>/<name>.json or assets/layers/<name>/<name>.json
CORPUS_FILE_PATTERN = re.compile(r"(?:^|/)assets/(?P<asset>themes|layers)/(?P<name>[^/]+)/(?P=name)\.json$")


class Role(str, Enum):
    """Corpus role of a document."""

    THEME = "theme"
    LAYER = "layer"


@dataclass
class CorpusLayout:
    """Locates corpus documents below a root directory."""

    root: Path
    tagrenderings_pool: str = "questions"
    filters_pool: str = "filters"
    excluded_layers: set[str] = field(default_factory=lambda: {"favourite"})
    excluded_files: set[str] = field(default_factory=lambda: {"license_info.json"})
    excluded_suffixes: tuple[str, ...] = (".proto.json",)

    @classmethod
    def from_config(cls, root: Path, config: IndexConfig) -> "CorpusLayout":
        return cls(
            root=root,
            tagrenderings_pool=config.tagrenderings_pool,
            filters_pool=config.filters_pool,
            excluded_layers=set(config.excluded_layers),
            excluded_files=set(config.excluded_files),
            excluded_suffixes=tuple(config.excluded_suffixes),
        )

    @property
    def assets_dir(self) -> Path:
        return self.root / "assets"

    def key(self, path: Path | str) -> str:
        """Canonical string identity of a document path."""
        return str(Path(path).resolve())

    def pool_layer(self, kind: Kind) -> str | None:
        """The shared pool layer id for a kind, if it has one."""
        return {
            Kind.TAG_RENDERING: self.tagrenderings_pool,
            Kind.FILTER: self.filters_pool,
        }.get(kind)

    def layer_file(self, layer_id: str) -> Path | None:
        """Path of the layer document with this id, or None for an unusable id."""
        if not layer_id or layer_id in (".", "..") or "/" in layer_id or "\\" in layer_id:
            return None
        return self.assets_dir / "layers" / layer_id / f"{layer_id}.json"

    def theme_file(self, theme_id: str) -> Path | None:
        if not theme_id or theme_id in (".", "..") or "/" in theme_id or "\\" in theme_id:
            return None
        return self.assets_dir / "themes" / theme_id / f"{theme_id}.json"

    def _match(self, path: Path | str) -> re.Match[str] | None:
        return CORPUS_FILE_PATTERN.search(Path(path).as_posix())

    def role_of(self, path: Path | str) -> Role | None:
        """Infer the corpus role of a document from its path."""
        match = self._match(path)
        if not match:
            return None
        return Role.THEME if match.group("asset") == "themes" else Role.LAYER

    def document_name(self, path: Path | str) -> str | None:
        """The folder/file name of a corpus document (its layer or theme id)."""
        match = self._match(path)
        return match.group("name") if match else None

    def is_eligible(self, path: Path | str) -> bool:
        """Whether a path is a corpus document that should be scanned."""
        p = Path(path)
        if p.name in self.excluded_files:
            return False
        if any(p.name.endswith(suffix) for suffix in self.excluded_suffixes):
            return False
        match = self._match(p)
        if not match:
            return False
        if match.group("asset") == "layers" and match.group("name") in self.excluded_layers:
            return False
        return True

    def iter_files(self) -> Iterator[Path]:
        """All eligible corpus documents, in a stable order."""
        if not self.assets_dir.is_dir():
            return
        for path in sorted(self.assets_dir.glob("*/*/*.json")):
            if path.is_file() and self.is_eligible(path):
                yield path
