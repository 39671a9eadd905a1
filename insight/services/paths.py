"""Response-path interpreter used to pull text out of arbitrary JSON responses.

A path is a dot-separated list of segments, each a plain key optionally
followed by one or more ``[index]`` suffixes::

    choices[0].message.content
    results[0][2].text
    [0].ParsedText

Paths are parsed once into a tuple of typed segments by a small
recursive-descent parser and then evaluated against the decoded response.
"""
from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Tuple, Union

from insight.core.errors import ConfigMissingError, PathNotFoundError
from insight.core.models import normalize_text

__all__ = [
    "KeySegment",
    "IndexSegment",
    "PathSegment",
    "parse_path",
    "resolve_path",
    "extract_text_at",
]


@dataclass(slots=True, frozen=True)
class KeySegment:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(slots=True, frozen=True)
class IndexSegment:
    index: int

    def __str__(self) -> str:
        return f"[{self.index}]"


PathSegment = Union[KeySegment, IndexSegment]

_RESERVED = ".[]"


class _PathParser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._pos = 0

    def parse(self) -> Tuple[PathSegment, ...]:
        if not self._source.strip():
            raise ConfigMissingError("response path is empty")
        segments = self._path()
        if self._pos != len(self._source):
            self._fail(f"unexpected {self._peek()!r}")
        return tuple(segments)

    # path := segment ("." segment)*
    def _path(self) -> list[PathSegment]:
        segments = self._segment()
        if self._peek() == ".":
            self._pos += 1
            segments.extend(self._path())
        return segments

    # segment := key index* | index+
    def _segment(self) -> list[PathSegment]:
        segments: list[PathSegment] = []
        if self._peek() != "[":
            segments.append(self._key())
        segments.extend(self._indices())
        if not segments:
            self._fail("expected a key or an index")
        return segments

    def _key(self) -> KeySegment:
        start = self._pos
        while self._pos < len(self._source) and self._source[self._pos] not in _RESERVED:
            self._pos += 1
        name = self._source[start:self._pos].strip()
        if not name:
            self._fail("expected a key")
        return KeySegment(name)

    def _indices(self) -> list[IndexSegment]:
        indices: list[IndexSegment] = []
        while self._peek() == "[":
            self._pos += 1
            start = self._pos
            while self._pos < len(self._source) and self._source[self._pos].isdigit():
                self._pos += 1
            digits = self._source[start:self._pos]
            if not digits:
                self._fail("expected an array index")
            if self._peek() != "]":
                self._fail("expected ']'")
            self._pos += 1
            indices.append(IndexSegment(int(digits)))
        return indices

    def _peek(self) -> str:
        return self._source[self._pos] if self._pos < len(self._source) else ""

    def _fail(self, message: str) -> None:
        raise ConfigMissingError(f"invalid response path {self._source!r} at position {self._pos}: {message}")


@lru_cache(maxsize=128)
def parse_path(path: str) -> Tuple[PathSegment, ...]:
    """Parse ``path`` into typed segments, raising :class:`ConfigMissingError` when malformed."""

    if not isinstance(path, str):
        raise ConfigMissingError("response path must be a string")
    return _PathParser(path).parse()


def resolve_path(document: Any, path: str | Sequence[PathSegment]) -> Any:
    """Walk ``document`` along ``path`` and return the value found there."""

    segments = parse_path(path) if isinstance(path, str) else tuple(path)
    current = document
    walked: list[str] = []
    for segment in segments:
        walked.append(str(segment))
        if isinstance(segment, KeySegment):
            if not isinstance(current, Mapping):
                raise PathNotFoundError(f"'{_render(walked)}' does not address an object")
            current = current.get(segment.name)
        else:
            if isinstance(current, (str, bytes)) or not isinstance(current, Sequence):
                raise PathNotFoundError(f"'{_render(walked)}' does not address an array")
            if segment.index >= len(current):
                raise PathNotFoundError(f"'{_render(walked)}' is out of range (length {len(current)})")
            current = current[segment.index]
        if current is None:
            raise PathNotFoundError(f"nothing found at '{_render(walked)}'")
    return current


def extract_text_at(document: Any, path: str) -> str:
    """Resolve ``path`` and stringify the result, normalising empty text to the sentinel."""

    value = resolve_path(document, path)
    if isinstance(value, str):
        return normalize_text(value)
    return normalize_text(json.dumps(value, ensure_ascii=False))


def _render(walked: list[str]) -> str:
    rendered = ""
    for part in walked:
        if part.startswith("[") or not rendered:
            rendered += part
        else:
            rendered += "." + part
    return rendered
