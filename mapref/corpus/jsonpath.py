"""
Tolerant JSON parsing with source offsets, on top of tree-sitter.

Documents are usually being edited while they are queried, so a parse never
gives up. Well-formed text is converted straight from the tree-sitter syntax
tree. When the tree has errors, its tokens are reassembled into the closest
node tree and the problems are recorded as issues. Comments and trailing
commas are tolerated silently; everything else is recorded as an error that
makes ``parse_document`` fail while still leaving the tree usable for cursor
lookups.

This module provides:
- A node tree with absolute offsets (objects, properties, arrays, scalars)
- Path -> value and path -> source range lookups
- Cursor position -> structural path lookups
"""

from __future__ import annotations

import json
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Sequence

import tree_sitter_json
from tree_sitter import Language, Parser
from tree_sitter import Node as SyntaxNode

from ..models import JsonPath, Position, Range

JSON_LANGUAGE = Language(tree_sitter_json.language())

_NUMBER_PATTERN = re.compile(r"-?(?:0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?")
_LITERALS = {"true": True, "false": False, "null": None}
_SCALARS = frozenset(["string", "number", "true", "false", "null"])
_CONTAINERS = frozenset(["object", "array"])
_PUNCTUATION = frozenset("{}[]:,")


@dataclass(frozen=True)
class SyntaxIssue:
    """A problem found while parsing."""

    offset: int
    message: str
    tolerated: bool = False


class JsonParseError(ValueError):
    """Raised when a document is not valid JSON."""

    def __init__(self, issues: Sequence[SyntaxIssue]):
        self.issues = list(issues)
        if self.issues:
            first = self.issues[0]
            message = f"{first.message} at offset {first.offset}"
        else:
            message = "invalid JSON"
        super().__init__(message)


@dataclass(eq=False)
class Node:
    """A JSON syntax node.

    Object children are ``property`` nodes, whose children are the key node
    and (when present) the value node.
    """

    type: str  # object, property, array, string, number, boolean, null
    offset: int
    length: int = 0
    value: Any = None
    closed: bool = True
    colon_offset: int = -1
    children: list[Node] = field(default_factory=list, repr=False)
    separators: list[int] = field(default_factory=list, repr=False)

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def is_container(self) -> bool:
        return self.type in ("object", "array")


@dataclass
class _Item:
    """A token of a tree with errors: punctuation, a complete value, or junk."""

    kind: str
    offset: int
    end: int
    node: Node | None = None


def _char_offsets(source: str, data: bytes) -> list[int] | None:
    """Map UTF-8 byte offsets to character offsets, or None for ASCII text."""
    if len(data) == len(source):
        return None
    offsets: list[int] = []
    for index, ch in enumerate(source):
        offsets.extend([index] * len(ch.encode("utf-8", "surrogatepass")))
    offsets.append(len(source))
    return offsets


def _terminated(raw: str) -> bool:
    if len(raw) < 2 or not raw.endswith('"'):
        return False
    backslashes = len(raw) - 1 - len(raw[:-1].rstrip("\\"))
    return backslashes % 2 == 0


def _string_end(text: str, start: int) -> int:
    """End of the string literal opening at ``start`` (stops at a line break)."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == '"':
            return i + 1
        if ch == "\n":
            return i
        i += 2 if ch == "\\" else 1
    return len(text)


class _TreeBuilder:
    """Builds the node tree of one text from its tree-sitter parse."""

    def __init__(self, text: str):
        self.text = text
        # A byte order mark is parsed as a space so character offsets stay put
        source = " " + text[1:] if text.startswith("\ufeff") else text
        data = source.encode("utf-8", "surrogatepass")
        self.tree = Parser(JSON_LANGUAGE).parse(data)
        self.issues: list[SyntaxIssue] = []
        self._offsets = _char_offsets(source, data)

    def error(self, offset: int, message: str, tolerated: bool = False) -> None:
        self.issues.append(SyntaxIssue(offset, message, tolerated))

    def char(self, byte_offset: int) -> int:
        return byte_offset if self._offsets is None else self._offsets[byte_offset]

    def build(self) -> Node | None:
        document = self.tree.root_node
        if document.has_error:
            items: list[_Item] = []
            self.flatten(document, items)
            return _Assembler(items, len(self.text), self).parse()

        values = [child for child in document.named_children if child.type != "comment"]
        if not values:
            self.error(len(self.text), "value expected")
            return None
        if len(values) > 1:
            self.error(self.char(values[1].start_byte), "end of input expected")
        return self.convert(values[0])

    def convert(self, node: SyntaxNode) -> Node:
        """Convert an error-free subtree."""
        start, end = self.char(node.start_byte), self.char(node.end_byte)
        if node.type not in _CONTAINERS:
            return self.scalar(node.type, start, end)
        result = Node(node.type, start, end - start)
        for child in node.children:
            if child.type == ",":
                result.separators.append(self.char(child.start_byte))
            elif child.type == "pair":
                result.children.append(self.convert_pair(child))
            elif child.is_named and child.type != "comment":
                result.children.append(self.convert(child))
        return result

    def convert_pair(self, node: SyntaxNode) -> Node:
        key = self.convert(node.child_by_field_name("key"))
        if key.type != "string":
            self.error(key.offset, "property name expected")
            key = Node("string", key.offset, key.length, self.text[key.offset : key.end])
        value = self.convert(node.child_by_field_name("value"))
        prop = Node("property", key.offset, value.end - key.offset, children=[key, value])
        for child in node.children:
            if child.type == ":":
                prop.colon_offset = self.char(child.start_byte)
                break
        return prop

    def scalar(self, kind: str, start: int, end: int) -> Node:
        if kind == "string":
            return self.string(start, end)
        if kind == "number":
            raw = self.text[start:end]
            match = _NUMBER_PATTERN.fullmatch(raw)
            if not match:
                self.error(start, "invalid number")
                return Node("number", start, end - start, None)
            value: int | float = float(raw) if match.group(1) or match.group(2) else int(raw)
            return Node("number", start, end - start, value)
        if kind in _LITERALS:
            literal = _LITERALS[kind]
            return Node("null" if literal is None else "boolean", start, end - start, literal)
        self.error(start, "value expected")
        return Node("null", start, end - start)

    def string(self, start: int, end: int) -> Node:
        raw = self.text[start:end]
        closed = _terminated(raw)
        if not closed:
            self.error(start, "unterminated string")
        try:
            value = json.loads(raw if closed else raw + '"', strict=False)
        except json.JSONDecodeError:
            self.error(start, "invalid escape character")
            value = raw[1:-1] if closed else raw[1:]
        return Node("string", start, end - start, value, closed=closed)

    def flatten(self, node: SyntaxNode, items: list[_Item]) -> None:
        """Collect the tokens below ``node``, keeping error-free values whole."""
        for child in node.children:
            start, end = self.char(child.start_byte), self.char(child.end_byte)
            if child.is_missing or start == end or child.type == "comment":
                continue
            atomic = child.type in _SCALARS or (child.type in _CONTAINERS and not child.has_error)
            if not atomic and child.child_count and child.type != '"':
                self.flatten(child, items)
                continue
            # Already inside a string recovered from a stray quote
            if items and start < items[-1].end:
                continue
            if atomic:
                items.append(_Item("value", start, end, self.convert(child)))
            elif child.type == '"':
                end = _string_end(self.text, start)
                items.append(_Item("value", start, end, self.string(start, end)))
            elif child.type in _PUNCTUATION:
                items.append(_Item(child.type, start, end))
            else:
                items.append(_Item("junk", start, end))


class _Assembler:
    """Rebuilds the structure of a tree with errors from its tokens."""

    def __init__(self, items: list[_Item], length: int, builder: _TreeBuilder):
        self.items = items
        self.length = length
        self.pos = 0
        self.error = builder.error

    def peek(self) -> str:
        return self.items[self.pos].kind if self.pos < len(self.items) else ""

    def here(self) -> int:
        return self.items[self.pos].offset if self.pos < len(self.items) else self.length

    def at_key(self) -> bool:
        return self.peek() == "value" and self.items[self.pos].node.type == "string"

    def parse(self) -> Node | None:
        root = self.value()
        if root is None:
            self.error(self.here(), "value expected")
        if self.pos < len(self.items):
            self.error(self.here(), "end of input expected")
        return root

    def value(self) -> Node | None:
        kind = self.peek()
        if kind == "value":
            self.pos += 1
            return self.items[self.pos - 1].node
        if kind == "{":
            return self.object()
        if kind == "[":
            return self.array()
        return None

    def _finish(self, node: Node, closed: bool) -> Node:
        node.closed = closed
        node.length = (self.items[self.pos - 1].end if closed else self.here()) - node.offset
        return node

    def _separator(self, node: Node, need_comma: bool, closer: str, message: str) -> None:
        if not need_comma:
            self.error(self.here(), message)
        node.separators.append(self.here())
        self.pos += 1
        if self.peek() == closer and node.children:
            self.error(node.separators[-1], "trailing comma", tolerated=True)

    def object(self) -> Node:
        node = Node("object", self.here())
        self.pos += 1
        need_comma = False
        while True:
            kind = self.peek()
            if kind == "}":
                self.pos += 1
                return self._finish(node, True)
            if not kind or kind == "]":
                self.error(self.here(), "closing brace expected")
                return self._finish(node, False)
            if kind == ",":
                self._separator(node, need_comma, "}", "property expected")
                need_comma = False
                continue
            if not self.at_key():
                self.error(self.here(), "property name expected")
                self.pos += 1
                while self.peek() not in ("", ",", "}", "]") and not self.at_key():
                    self.pos += 1
                continue
            if need_comma:
                self.error(self.here(), "comma expected")
            node.children.append(self.property())
            need_comma = True

    def property(self) -> Node:
        key = self.items[self.pos].node
        self.pos += 1
        prop = Node("property", key.offset, key.length, children=[key])
        if self.peek() != ":":
            self.error(self.here(), "colon expected")
            return prop
        prop.colon_offset = self.here()
        self.pos += 1
        value = self.value()
        if value is None:
            self.error(self.here(), "value expected")
            # Extend up to the next token so a cursor after the colon still hits the property
            prop.length = self.here() - prop.offset
            return prop
        prop.children.append(value)
        prop.length = value.end - prop.offset
        return prop

    def array(self) -> Node:
        node = Node("array", self.here())
        self.pos += 1
        need_comma = False
        while True:
            kind = self.peek()
            if kind == "]":
                self.pos += 1
                return self._finish(node, True)
            if not kind or kind == "}":
                self.error(self.here(), "closing bracket expected")
                return self._finish(node, False)
            if kind == ",":
                self._separator(node, need_comma, "]", "value expected")
                need_comma = False
                continue
            if need_comma:
                self.error(self.here(), "comma expected")
            value = self.value()
            if value is None:
                self.error(self.here(), "value expected")
                if self.peek() not in ("", ",", "]", "}"):
                    self.pos += 1
                continue
            node.children.append(value)
            need_comma = True


def node_value(node: Node) -> Any:
    """Convert a node (sub)tree to plain Python values."""
    if node.type == "object":
        result: dict[str, Any] = {}
        for prop in node.children:
            if len(prop.children) == 2:
                result[prop.children[0].value] = node_value(prop.children[1])
        return result
    if node.type == "array":
        return [node_value(child) for child in node.children]
    return node.value


def find_node(root: Node | None, path: Sequence[str | int]) -> Node | None:
    """Find the value node addressed by ``path``, or None."""
    node = root
    for segment in path:
        if node is None:
            return None
        if node.type == "object" and isinstance(segment, str):
            found = None
            # Last duplicate key wins, like json.loads
            for prop in reversed(node.children):
                if len(prop.children) == 2 and prop.children[0].value == segment:
                    found = prop.children[1]
                    break
            node = found
        elif node.type == "array" and isinstance(segment, int) and not isinstance(segment, bool):
            node = node.children[segment] if 0 <= segment < len(node.children) else None
        else:
            return None
    return node


def _path_in(node: Node, offset: int) -> list[str | int]:
    if node.type == "object":
        for prop in node.children:
            key = prop.children[0]
            if key.offset < offset <= key.end:
                return [key.value]
            if len(prop.children) == 2:
                value = prop.children[1]
                if value.is_container:
                    if value.offset < offset and (offset < value.end or not value.closed):
                        return [key.value, *_path_in(value, offset)]
                elif value.offset <= offset <= value.end:
                    return [key.value]
            elif prop.colon_offset != -1 and prop.colon_offset < offset <= prop.end:
                return [key.value]
        return []
    if node.type == "array":
        for index, child in enumerate(node.children):
            if child.is_container:
                if child.offset < offset and (offset < child.end or not child.closed):
                    return [index, *_path_in(child, offset)]
            elif child.offset <= offset <= child.end:
                return [index]
        return [sum(1 for sep in node.separators if sep < offset)]
    return []


def parse_path(path: str | Sequence[str | int]) -> JsonPath:
    """Convert a dotted path ("layers.0.builtin") to a JSON path tuple."""
    if not isinstance(path, str):
        return tuple(path)
    if not path:
        return ()
    return tuple(int(part) if part.isdigit() else part for part in path.split("."))


def format_path(path: Sequence[str | int]) -> str:
    """Convert a JSON path to its dotted form."""
    return ".".join(str(part) for part in path)


class JsonDocument:
    """Parsed view of one document's text.

    The tree is built once; all lookups are relative to the full text.
    """

    def __init__(self, text: str):
        self.text = text
        builder = _TreeBuilder(text)
        self.root = builder.build()
        self.issues = sorted(builder.issues, key=lambda issue: issue.offset)
        self._line_starts: list[int] | None = None
        self._value: Any = None
        self._has_value = False

    @property
    def errors(self) -> list[SyntaxIssue]:
        return [issue for issue in self.issues if not issue.tolerated]

    @property
    def valid(self) -> bool:
        return self.root is not None and not self.errors

    @property
    def value(self) -> Any:
        """The document's value; raises JsonParseError for invalid JSON."""
        if not self.valid:
            raise JsonParseError(self.errors or [SyntaxIssue(0, "value expected")])
        if not self._has_value:
            self._value = node_value(self.root)
            self._has_value = True
        return self._value

    def node_at(self, path: Sequence[str | int]) -> Node | None:
        return find_node(self.root, path)

    def value_at(self, path: Sequence[str | int]) -> Any:
        node = self.node_at(path)
        return None if node is None else node_value(node)

    def locate(self, path: Sequence[str | int]) -> Range | None:
        """Range of the value at ``path``, without its quotes or brackets."""
        node = self.node_at(path)
        if node is None:
            return None
        start, end = node.offset, node.end
        if node.type in ("string", "object", "array") and node.length >= 2:
            start += 1
            end -= 1 if node.closed else 0
        return Range(self.offset_to_position(start), self.offset_to_position(end))

    @property
    def line_starts(self) -> list[int]:
        if self._line_starts is None:
            starts = [0]
            index = self.text.find("\n")
            while index != -1:
                starts.append(index + 1)
                index = self.text.find("\n", index + 1)
            self._line_starts = starts
        return self._line_starts

    def offset_to_position(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self.text)))
        line = bisect_right(self.line_starts, offset) - 1
        return Position(line, offset - self.line_starts[line])

    def position_to_offset(self, position: Position) -> int:
        starts = self.line_starts
        if position.line < 0:
            return 0
        if position.line >= len(starts):
            return len(self.text)
        line_start = starts[position.line]
        line_end = starts[position.line + 1] - 1 if position.line + 1 < len(starts) else len(self.text)
        return line_start + max(0, min(position.character, line_end - line_start))

    def path_at_offset(self, offset: int) -> JsonPath:
        root = self.root
        if root is None or not root.is_container:
            return ()
        if root.offset < offset and (offset < root.end or not root.closed):
            return tuple(_path_in(root, offset))
        return ()

    def path_at_position(self, position: Position) -> JsonPath:
        return self.path_at_offset(self.position_to_offset(position))


def parse_document(text: str) -> Any:
    """Parse JSON text, tolerating comments and trailing commas."""
    return JsonDocument(text).value


def value_at(text: str, path: str | Sequence[str | int]) -> Any:
    """Value at ``path``, or None when the path does not resolve."""
    return JsonDocument(text).value_at(parse_path(path))


def locate(text: str, path: str | Sequence[str | int]) -> Range | None:
    """Tightest source range of the value at ``path``, or None."""
    return JsonDocument(text).locate(parse_path(path))


def path_at_position(text: str, position: Position) -> JsonPath:
    """Structural path containing ``position``, even in an incomplete document."""
    return JsonDocument(text).path_at_position(position)
