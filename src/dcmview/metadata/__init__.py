"""DICOM metadata trees parsed from ``dcm2xml`` dumps."""

from __future__ import annotations

from .filters import ExclusionRules
from .model import (
    AttributeNode,
    AttributeSet,
    DirectoryRecord,
    ImageRecord,
    LeafAttribute,
    MetadataTree,
    SequenceAttribute,
    SequenceItem,
    image_dimensions,
)
from .parser import MetadataParseError, parse_metadata
from .reader import MetadataReadError, read_metadata

__all__ = [
    "AttributeNode",
    "AttributeSet",
    "DirectoryRecord",
    "ExclusionRules",
    "ImageRecord",
    "LeafAttribute",
    "MetadataParseError",
    "MetadataReadError",
    "MetadataTree",
    "SequenceAttribute",
    "SequenceItem",
    "image_dimensions",
    "parse_metadata",
    "read_metadata",
]
