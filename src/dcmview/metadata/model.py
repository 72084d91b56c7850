"""Immutable attribute tree produced from a DICOM metadata dump."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "AttributeNode",
    "AttributeSet",
    "DirectoryRecord",
    "IMAGE_RECORD_KIND",
    "ImageRecord",
    "LeafAttribute",
    "MetadataTree",
    "RECORD_SEQUENCE_KEY",
    "RECORD_TYPE_KEY",
    "REFERENCED_FILE_KEY",
    "SequenceAttribute",
    "SequenceItem",
    "image_dimensions",
]

RECORD_SEQUENCE_KEY = "DirectoryRecordSequence"
RECORD_TYPE_KEY = "DirectoryRecordType"
REFERENCED_FILE_KEY = "ReferencedFileID"

IMAGE_RECORD_KIND = "IMAGE"


@dataclass(frozen=True, slots=True)
class LeafAttribute:
    """A single attribute with a text value."""

    key: str
    value: str


@dataclass(frozen=True, slots=True)
class SequenceAttribute:
    """An attribute whose value is an ordered list of items."""

    key: str
    items: tuple[SequenceItem, ...]


@dataclass(frozen=True, slots=True)
class AttributeSet:
    """One item of a sequence: attributes sorted by key."""

    children: tuple[AttributeNode, ...]

    def get(self, key: str) -> AttributeNode | None:
        return _find(self.children, key)

    def text(self, key: str) -> str | None:
        return _text(self.children, key)


@dataclass(frozen=True, slots=True)
class DirectoryRecord:
    """An entry of the DICOMDIR record listing."""

    kind: str
    children: tuple[AttributeNode, ...]

    def get(self, key: str) -> AttributeNode | None:
        return _find(self.children, key)

    def text(self, key: str) -> str | None:
        return _text(self.children, key)


@dataclass(frozen=True, slots=True)
class ImageRecord(DirectoryRecord):
    """A directory record that references an image file."""

    source: Path


AttributeNode = LeafAttribute | SequenceAttribute
"""Attributes appearing inside a data set or item."""

SequenceItem = AttributeSet | DirectoryRecord | ImageRecord
"""Items appearing inside a sequence."""


@dataclass(frozen=True, slots=True)
class MetadataTree:
    """Filtered attribute tree of one DICOM file."""

    source: Path
    attributes: tuple[AttributeNode, ...]

    def get(self, key: str) -> AttributeNode | None:
        return _find(self.attributes, key)

    def text(self, key: str) -> str | None:
        return _text(self.attributes, key)

    @property
    def records(self) -> tuple[SequenceItem, ...]:
        """Return the DICOMDIR record listing in source order."""

        node = self.get(RECORD_SEQUENCE_KEY)
        if isinstance(node, SequenceAttribute):
            return node.items
        return ()

    @property
    def is_directory(self) -> bool:
        return any(isinstance(item, DirectoryRecord) for item in self.records)

    @property
    def frame_count(self) -> int:
        return _parse_int(self.text("NumberOfFrames")) or 1

    def frame_rate(self, default: float) -> float:
        """Return the playback rate declared by the file, or *default*."""

        for key in ("CineRate", "RecommendedDisplayFrameRate"):
            rate = _parse_float(self.text(key))
            if rate:
                return rate
        frame_time = _parse_float(self.text("FrameTime"))
        if frame_time:
            return 1000.0 / frame_time
        return default

    def walk(self) -> Iterator[AttributeNode]:
        """Yield every attribute of the tree depth first."""

        yield from _walk(self.attributes)


def image_dimensions(container: MetadataTree | DirectoryRecord | AttributeSet) -> tuple[int, int] | None:
    """Return ``(columns, rows)`` when both are declared by *container*."""

    columns = _parse_int(container.text("Columns"))
    rows = _parse_int(container.text("Rows"))
    if columns and rows:
        return columns, rows
    return None


def _walk(nodes: tuple[AttributeNode, ...]) -> Iterator[AttributeNode]:
    for node in nodes:
        yield node
        if isinstance(node, SequenceAttribute):
            for item in node.items:
                yield from _walk(item.children)


def _find(nodes: tuple[AttributeNode, ...], key: str) -> AttributeNode | None:
    for node in nodes:
        if node.key == key:
            return node
    return None


def _text(nodes: tuple[AttributeNode, ...], key: str) -> str | None:
    node = _find(nodes, key)
    if isinstance(node, LeafAttribute):
        return node.value
    return None


def _parse_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value.split("\\", 1)[0].strip())
    except ValueError:
        return None


def _parse_float(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = float(value.split("\\", 1)[0].strip())
    except ValueError:
        return None
    return parsed if parsed > 0 else None
