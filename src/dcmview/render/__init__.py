"""Render metadata trees and bind lazily converted images."""

from __future__ import annotations

from .binder import (
    PLAY_ANCHOR,
    bind_image,
    full_key_at,
    image_name_at,
    open_anchor,
    patch_slot,
    render_tree,
)
from .placeholder import render_placeholder
from .session import RenderSlot, SlotState, ViewSession, open_session

__all__ = [
    "PLAY_ANCHOR",
    "RenderSlot",
    "SlotState",
    "ViewSession",
    "bind_image",
    "full_key_at",
    "image_name_at",
    "open_anchor",
    "open_session",
    "patch_slot",
    "render_placeholder",
    "render_tree",
]
