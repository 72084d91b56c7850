"""Render metadata trees into a :class:`~PySide6.QtGui.QTextDocument`.

The document is written in a single depth-first pass. Image-bearing nodes
get a :class:`~dcmview.render.session.RenderSlot`: a single object character
that shows either the cached artifact or a placeholder. When a conversion
finishes later only that character's format is replaced, so the text around
it never moves and nothing is laid out again.
"""

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path

from PySide6.QtCore import QUrl
from PySide6.QtGui import (
    QFont,
    QFontDatabase,
    QImage,
    QTextBlockFormat,
    QTextCharFormat,
    QTextCursor,
    QTextDocument,
    QTextImageFormat,
)

from ..cache import CacheCommitError, CacheEntry
from ..jobs import ConversionJob
from ..metadata import (
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
from ..metadata.model import RECORD_SEQUENCE_KEY
from ..tools import still_image_command
from .placeholder import render_placeholder
from .session import RenderSlot, SlotState, ViewSession

__all__ = [
    "PLAY_ANCHOR",
    "bind_image",
    "full_key_at",
    "image_name_at",
    "open_anchor",
    "patch_slot",
    "render_tree",
]

logger = logging.getLogger(__name__)

PLAY_ANCHOR = "dcmview:play"
"""Anchor of the link that starts playback of a multi-frame file."""

_ELLIPSIS = "…"
_INDENT_WIDTH = 18

_RECORD_LEVELS: dict[str, int] = {
    "PATIENT": 0,
    "STUDY": 1,
    "SERIES": 2,
    "IMAGE": 3,
}


def open_anchor(path: Path) -> str:
    """Return the anchor used for links that open *path* in a new view."""

    return QUrl.fromLocalFile(str(path)).toString()


def render_tree(session: ViewSession, tree: MetadataTree) -> None:
    """Write *tree* into the session document, binding every image slot."""

    session.tree = tree
    document = session.document
    document.setIndentWidth(_INDENT_WIDTH)
    document.setDefaultFont(QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont))

    cursor = QTextCursor(document)
    cursor.movePosition(QTextCursor.MoveOperation.End)
    _insert_title(cursor, tree.source.name)

    if tree.is_directory:
        attributes = tuple(node for node in tree.attributes if node.key != RECORD_SEQUENCE_KEY)
        _render_attributes(session, cursor, attributes, 0)
        for record in tree.records:
            _render_item(session, cursor, record, level=0, heading=None)
    else:
        _new_block(cursor, 0)
        bind_image(
            session,
            cursor,
            source=tree.source,
            identity=f"large:{tree.source}",
            height=session.config.image_height,
            dimensions=image_dimensions(tree),
        )
        if tree.frame_count > 1:
            _new_block(cursor, 0)
            _insert_link(cursor, f"▶ Play {tree.frame_count} frames", PLAY_ANCHOR)
        _render_attributes(session, cursor, tree.attributes, 0)

    logger.debug(
        "Rendered %s: %d image slots, %d conversions queued",
        tree.source.name,
        len(session.slots),
        sum(1 for slot in session.slots if slot.job is not None),
    )


def bind_image(
    session: ViewSession,
    cursor: QTextCursor,
    *,
    source: Path,
    identity: str,
    height: int | None,
    dimensions: tuple[int, int] | None = None,
    anchor: str | None = None,
) -> RenderSlot:
    """Insert an image slot for *source* at *cursor*.

    A cache hit binds the slot to the existing artifact. A miss binds a
    placeholder and submits a conversion whose completion patches the slot;
    slots sharing an identity wait on a single conversion.
    """

    entry = session.cache.lookup(identity, "png")
    size = _display_size(dimensions, height)
    slot = RenderSlot(
        position=cursor.position(),
        identity=identity,
        source=source,
        size=size,
        anchor=anchor,
    )
    session.slots.append(slot)

    if entry.exists:
        slot.state = SlotState.RESOLVED
        slot.artifact = entry.final_path
        name, size = _artifact_resource(session.document, entry.final_path, size)
        cursor.insertImage(_image_format(name, size, anchor, source))
        return slot

    cursor.insertImage(_image_format(_placeholder_resource(session.document, size), size, anchor, source))
    waiting = session.waiting.get(identity)
    if waiting is not None:
        # A conversion of the same identity is already in flight.
        slot.job = waiting[0].job
        waiting.append(slot)
        return slot

    job = ConversionJob(
        commands=(still_image_command(session.config.tools, source, entry.temp_path, height=height),),
        temp_path=entry.temp_path,
        final_path=entry.final_path,
        label=f"png {identity}",
    )
    job.on_finished = partial(_on_conversion_finished, session, entry)
    slot.job = job
    session.waiting[identity] = [slot]
    session.scheduler.submit(job)
    return slot


def patch_slot(session: ViewSession, slot: RenderSlot, artifact: Path) -> None:
    """Rebind *slot* to *artifact* without touching the rest of the document."""

    slot.resolve(artifact)
    document = session.document
    name, size = _artifact_resource(document, artifact, slot.size)

    cursor = QTextCursor(document)
    cursor.setPosition(slot.position)
    cursor.setPosition(slot.position + 1, QTextCursor.MoveMode.KeepAnchor)
    if not cursor.charFormat().isImageFormat():
        raise RuntimeError(f"Render slot for {slot.identity} no longer points at an image")
    cursor.setCharFormat(_image_format(name, size, slot.anchor, slot.source))


def image_name_at(document: QTextDocument, position: int) -> str | None:
    """Return the resource name of the image at *position*, if any."""

    cursor = QTextCursor(document)
    cursor.setPosition(position)
    cursor.setPosition(position + 1, QTextCursor.MoveMode.KeepAnchor)
    char_format = cursor.charFormat()
    if not char_format.isImageFormat():
        return None
    return char_format.toImageFormat().name()


def full_key_at(session: ViewSession, position: int) -> str | None:
    """Return the untruncated attribute name of the line at *position*."""

    block = session.document.findBlock(position)
    if not block.isValid():
        return None
    return session.full_keys.get(block.blockNumber())


# ----------------------------------------------------------------------
# Tree walk
# ----------------------------------------------------------------------
def _render_attributes(
    session: ViewSession,
    cursor: QTextCursor,
    nodes: tuple[AttributeNode, ...],
    level: int,
) -> None:
    for node in nodes:
        _render_node(session, cursor, node, level)


def _render_node(session: ViewSession, cursor: QTextCursor, node: AttributeNode, level: int) -> None:
    if isinstance(node, LeafAttribute):
        _insert_field(session, cursor, node.key, node.value, level)
    elif isinstance(node, SequenceAttribute):
        _insert_heading(cursor, node.key, level)
        if len(node.items) == 1:
            _render_item(session, cursor, node.items[0], level=level + 1, heading=None)
        else:
            for index, item in enumerate(node.items, start=1):
                _render_item(session, cursor, item, level=level + 1, heading=f"Item {index}")
    else:
        raise TypeError(f"Unexpected attribute node {node!r}")


def _render_item(
    session: ViewSession,
    cursor: QTextCursor,
    item: SequenceItem,
    *,
    level: int,
    heading: str | None,
) -> None:
    if isinstance(item, ImageRecord):
        record_level = level + _RECORD_LEVELS.get(item.kind, 1)
        _insert_heading(cursor, item.kind, record_level)
        _new_block(cursor, record_level + 1)
        bind_image(
            session,
            cursor,
            source=item.source,
            identity=str(item.source),
            height=session.config.thumbnail_height,
            dimensions=image_dimensions(item),
            anchor=open_anchor(item.source),
        )
        _render_attributes(session, cursor, item.children, record_level + 1)
    elif isinstance(item, DirectoryRecord):
        record_level = level + _RECORD_LEVELS.get(item.kind, 1)
        _insert_heading(cursor, item.kind, record_level)
        _render_attributes(session, cursor, item.children, record_level + 1)
    elif isinstance(item, AttributeSet):
        if heading is None:
            _render_attributes(session, cursor, item.children, level)
        else:
            _insert_heading(cursor, heading, level)
            _render_attributes(session, cursor, item.children, level + 1)
    else:
        raise TypeError(f"Unexpected sequence item {item!r}")


# ----------------------------------------------------------------------
# Document helpers
# ----------------------------------------------------------------------
def _new_block(cursor: QTextCursor, level: int) -> None:
    block_format = QTextBlockFormat()
    block_format.setIndent(level)
    cursor.insertBlock(block_format, QTextCharFormat())


def _insert_title(cursor: QTextCursor, title: str) -> None:
    block_format = QTextBlockFormat()
    block_format.setBottomMargin(6)
    cursor.setBlockFormat(block_format)
    char_format = QTextCharFormat()
    char_format.setFontWeight(QFont.Weight.Bold)
    char_format.setFontPointSize(14)
    cursor.insertText(title, char_format)


def _insert_heading(cursor: QTextCursor, text: str, level: int) -> None:
    _new_block(cursor, level)
    char_format = QTextCharFormat()
    char_format.setFontWeight(QFont.Weight.Bold)
    cursor.insertText(text, char_format)


def _insert_field(session: ViewSession, cursor: QTextCursor, key: str, value: str, level: int) -> None:
    _new_block(cursor, level)
    session.full_keys[cursor.block().blockNumber()] = key

    width = session.config.field_width
    key_format = QTextCharFormat()
    key_format.setFontWeight(QFont.Weight.DemiBold)
    if len(key) > width:
        display = key[: max(1, width - 1)] + _ELLIPSIS
        key_format.setToolTip(key)
    else:
        display = key
    cursor.insertText(display.ljust(width), key_format)
    cursor.insertText("  " + value, QTextCharFormat())


def _insert_link(cursor: QTextCursor, text: str, anchor: str) -> None:
    char_format = QTextCharFormat()
    char_format.setAnchor(True)
    char_format.setAnchorHref(anchor)
    char_format.setFontUnderline(True)
    cursor.insertText(text, char_format)


def _image_format(name: str, size: tuple[int, int], anchor: str | None, source: Path) -> QTextImageFormat:
    image_format = QTextImageFormat()
    image_format.setName(name)
    image_format.setWidth(size[0])
    image_format.setHeight(size[1])
    image_format.setToolTip(str(source))
    if anchor:
        image_format.setAnchor(True)
        image_format.setAnchorHref(anchor)
    return image_format


def _display_size(dimensions: tuple[int, int] | None, height: int | None) -> tuple[int, int]:
    if dimensions is None:
        side = height or 256
        return side, side
    columns, rows = dimensions
    if height is None:
        return columns, rows
    return max(1, round(columns * height / rows)), height


def _placeholder_resource(document: QTextDocument, size: tuple[int, int]) -> str:
    name = f"placeholder:{size[0]}x{size[1]}"
    url = QUrl(name)
    if document.resource(QTextDocument.ResourceType.ImageResource, url) is None:
        image = QImage()
        image.loadFromData(render_placeholder(size), "PNG")
        document.addResource(QTextDocument.ResourceType.ImageResource, url, image)
    return name


def _artifact_resource(
    document: QTextDocument,
    artifact: Path,
    fallback_size: tuple[int, int],
) -> tuple[str, tuple[int, int]]:
    name = QUrl.fromLocalFile(str(artifact)).toString()
    image = QImage(str(artifact))
    if image.isNull():
        logger.warning("Cached artifact %s could not be loaded", artifact)
        return name, fallback_size
    document.addResource(QTextDocument.ResourceType.ImageResource, QUrl(name), image)
    return name, (image.width(), image.height())


def _on_conversion_finished(session: ViewSession, entry: CacheEntry, success: bool) -> None:
    slots = session.waiting.pop(entry.identity, [])
    if not success:
        session.cache.discard(entry)
        for slot in slots:
            slot.fail()
        return
    try:
        artifact = session.cache.commit(entry)
    except CacheCommitError as exc:
        session.cache.discard(entry)
        if not entry.final_path.exists():
            logger.warning("%s", exc)
            for slot in slots:
                slot.fail()
            return
        # Another view committed the same identity first.
        artifact = entry.final_path
    if session.closed:
        return
    for slot in slots:
        patch_slot(session, slot, artifact)
