"""Parse ``dcm2xml`` dumps into :class:`~dcmview.metadata.model.MetadataTree` objects.

The dump uses DCMTK's native XML format::

    <file-format>
      <meta-header>...</meta-header>
      <data-set>
        <element tag="0010,0010" vr="PN" vm="1" len="8" name="PatientName">DOE^JOHN</element>
        <sequence tag="0004,1220" vr="SQ" card="2" name="DirectoryRecordSequence">
          <item card="4">...</item>
        </sequence>
      </data-set>
    </file-format>

Only the ``data-set`` element is rendered; the meta header describes the
encoding of the file and never carries clinical attributes.
"""

from __future__ import annotations

import re
from pathlib import Path

from lxml import etree

from ..utils.paths import resolve_file_id
from .filters import ExclusionRules
from .model import (
    IMAGE_RECORD_KIND,
    RECORD_SEQUENCE_KEY,
    RECORD_TYPE_KEY,
    REFERENCED_FILE_KEY,
    AttributeNode,
    AttributeSet,
    DirectoryRecord,
    ImageRecord,
    LeafAttribute,
    MetadataTree,
    SequenceAttribute,
    SequenceItem,
)

__all__ = ["MetadataParseError", "parse_metadata"]

_WHITESPACE_PATTERN = re.compile(r"[\s\x00-\x1f\x7f]+")


class MetadataParseError(ValueError):
    """Raised when a dump is not well-formed XML or lacks a data set."""


def parse_metadata(
    dump: bytes | str,
    *,
    rules: ExclusionRules,
    source: Path,
) -> MetadataTree:
    """Return the filtered attribute tree described by *dump*.

    Parameters
    ----------
    dump:
        XML produced by ``dcm2xml`` for *source*.
    rules:
        Exclusion rules; matching attributes are dropped at every depth.
    source:
        File the dump was produced from. Image records of a DICOMDIR are
        resolved relative to its directory.
    """

    if isinstance(dump, str):
        dump = dump.encode("utf-8")
    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        huge_tree=True,
        remove_comments=True,
    )
    try:
        root = etree.fromstring(dump, parser=parser)
    except etree.XMLSyntaxError as exc:
        raise MetadataParseError(f"Malformed metadata dump for {source}: {exc}") from exc

    data_set = root if root.tag == "data-set" else root.find("data-set")
    if data_set is None:
        raise MetadataParseError(f"Metadata dump for {source} has no data-set element")

    context = _ParseContext(rules=rules, base_dir=source.parent)
    attributes = context.parse_children(data_set, top_level=True)
    return MetadataTree(source=source, attributes=attributes)


class _ParseContext:
    def __init__(self, *, rules: ExclusionRules, base_dir: Path) -> None:
        self._rules = rules
        self._base_dir = base_dir

    def parse_children(self, parent: etree._Element, *, top_level: bool = False) -> tuple[AttributeNode, ...]:
        nodes: list[AttributeNode] = []
        for child in parent:
            if not isinstance(child.tag, str):
                continue
            name = self._readable_name(child)
            if name is None:
                continue
            if child.tag == "element":
                nodes.append(LeafAttribute(name, _collapse_whitespace(child.text or "")))
            elif child.tag == "sequence":
                records = top_level and name == RECORD_SEQUENCE_KEY
                items = self._parse_items(child, records=records)
                if items:
                    nodes.append(SequenceAttribute(name, items))
        nodes.sort(key=lambda node: node.key)
        return tuple(nodes)

    def _parse_items(self, sequence: etree._Element, *, records: bool) -> tuple[SequenceItem, ...]:
        items: list[SequenceItem] = []
        for element in sequence:
            if element.tag != "item":
                continue
            children = self.parse_children(element)
            if not children:
                continue
            items.append(self._make_item(children) if records else AttributeSet(children))
        return tuple(items)

    def _make_item(self, children: tuple[AttributeNode, ...]) -> SequenceItem:
        item = AttributeSet(children)
        kind = item.text(RECORD_TYPE_KEY)
        if not kind:
            return item
        kind = kind.upper()
        if kind == IMAGE_RECORD_KIND:
            file_id = item.text(REFERENCED_FILE_KEY)
            source = resolve_file_id(self._base_dir, file_id) if file_id else None
            if source is not None:
                return ImageRecord(kind, children, source)
        return DirectoryRecord(kind, children)

    def _readable_name(self, element: etree._Element) -> str | None:
        name = (element.get("name") or "").strip()
        if not name:
            return None
        if element.get("binary") == "hidden" or element.get("loaded") == "no":
            return None
        if self._rules.excludes(name):
            return None
        return name


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", text).strip()
