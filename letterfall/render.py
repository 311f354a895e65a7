"""Glyph measurement and frame rendering for the letter overlay."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .mask import OccupancyMask
from .state import Particle

logger = logging.getLogger(__name__)

BACKGROUND = (0, 0, 0)
HITBOX_COLOR = (0, 255, 0)  # Lime (RGB)
MASK_TINT = (255, 0, 255)  # Magenta (RGB), the segmentation preview color


def load_font(font_family: str, size: int) -> ImageFont.ImageFont:
    """TrueType font at ``size``; Pillow's bundled default font when the file is missing."""
    try:
        return ImageFont.truetype(font_family, size)
    except OSError:
        logger.warning("Font %s not found, using Pillow default font", font_family)
        return ImageFont.load_default(size=size)


class GlyphMeasurer:
    """``measure(text) -> width`` in surface pixels, with a small cache."""

    def __init__(self, font_family: str, font_size: int) -> None:
        self.font = load_font(font_family, font_size)
        self._cache: dict[str, float] = {}

    def __call__(self, text: str) -> float:
        return self.measure(text)

    def measure(self, text: str) -> float:
        width = self._cache.get(text)
        if width is None:
            width = float(self.font.getlength(text))
            if len(self._cache) < 8192:
                self._cache[text] = width
        return width


def hex_to_rgb(color: str) -> Tuple[int, int, int]:
    value = color.lstrip("#")
    try:
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except (ValueError, IndexError):
        return 255, 255, 255


class FrameRenderer:
    """Draws letters onto a BGR frame, optionally over the camera image with hitboxes and the mask."""

    def __init__(
        self,
        width: int,
        height: int,
        *,
        font: ImageFont.ImageFont,
        font_size: int,
        show_hitbox: bool = False,
        show_mask: bool = False,
        show_camera: bool = False,
    ) -> None:
        self.width = width
        self.height = height
        self.font = font
        self.font_size = font_size
        self.show_hitbox = show_hitbox
        self.show_mask = show_mask
        self.show_camera = show_camera

    def render(
        self,
        particles: Iterable[Particle],
        mask: Optional[OccupancyMask] = None,
        background: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        if self.show_camera and background is not None:
            rgb = cv2.cvtColor(cv2.resize(background, (self.width, self.height)), cv2.COLOR_BGR2RGB)
        else:
            rgb = np.zeros((self.height, self.width, 3), dtype=np.uint8)
            rgb[:] = BACKGROUND

        if self.show_mask and mask is not None and mask.width == self.width and mask.height == self.height:
            occupied = mask.alpha > 0
            tint = np.array(MASK_TINT, dtype=np.float32)
            rgb[occupied] = (rgb[occupied] * 0.6 + tint * 0.4).astype(np.uint8)

        image = Image.fromarray(rgb)
        draw = ImageDraw.Draw(image)
        for p in particles:
            # anchor "mt": x is the horizontal middle, y the top
            draw.text((p.x, p.y), p.char, font=self.font, fill=hex_to_rgb(p.color), anchor="mt")
            if self.show_hitbox:
                draw.rectangle(
                    [p.x - p.width / 2, p.y, p.x + p.width / 2, p.y + self.font_size],
                    outline=HITBOX_COLOR,
                )
        return cv2.cvtColor(np.asarray(image), cv2.COLOR_RGB2BGR)


def encode_jpeg(frame: np.ndarray, quality: int = 85) -> Optional[bytes]:
    ok, enc = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    return enc.tobytes() if ok else None


__all__ = ["FrameRenderer", "GlyphMeasurer", "encode_jpeg", "hex_to_rgb", "load_font"]
