"""Placeholder graphics shown while an image conversion is pending."""

from __future__ import annotations

import io
from functools import lru_cache

from PIL import Image, ImageDraw, ImageFont

__all__ = ["render_placeholder"]

Color = tuple[int, int, int, int]

_BACKGROUND: Color = (32, 36, 44, 255)
_BORDER: Color = (92, 104, 120, 255)
_TEXT: Color = (170, 180, 196, 255)
_LABEL = "Converting..."


@lru_cache(maxsize=32)
def render_placeholder(size: tuple[int, int]) -> bytes:
    """Return PNG bytes for a placeholder of *size* pixels."""

    width = max(1, int(size[0]))
    height = max(1, int(size[1]))
    image = Image.new("RGBA", (width, height), _BACKGROUND)
    draw = ImageDraw.Draw(image, "RGBA")

    border = max(1, min(width, height) // 100)
    draw.rectangle((0, 0, width - 1, height - 1), outline=_BORDER, width=border)

    # Diagonal hatching keeps large placeholders recognisable.
    spacing = max(12, min(width, height) // 8)
    for offset in range(-height, width, spacing):
        draw.line((offset, height, offset + height, 0), fill=(40, 45, 54, 255), width=1)

    if width >= 48 and height >= 16:
        font = ImageFont.load_default()
        left, top, right, bottom = draw.textbbox((0, 0), _LABEL, font=font)
        text_width = right - left
        text_height = bottom - top
        if text_width < width - 4:
            position = ((width - text_width) / 2 - left, (height - text_height) / 2 - top)
            draw.text(position, _LABEL, fill=_TEXT, font=font)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
