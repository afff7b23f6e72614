"""Corpus documents: layout, JSON parsing, identifier resolution and scanning."""

from .documents import DocumentCache
from .jsonpath import JsonDocument, JsonParseError, locate, parse_document, path_at_position, value_at
from .layout import CorpusLayout, Role
from .resolver import IdentifierResolver
from .scanner import DocumentScanner, ScanResult

__all__ = [
    "CorpusLayout",
    "DocumentCache",
    "DocumentScanner",
    "IdentifierResolver",
    "JsonDocument",
    "JsonParseError",
    "Role",
    "ScanResult",
    "locate",
    "parse_document",
    "path_at_position",
    "value_at",
]
