"""
Chroma-key matting.

Pixels close to a target color become transparent. Closeness is the
channel-max distance max(|dr|, |dg|, |db|). Pixels just outside the tolerance
fall into a fixed 30-unit feather band where the existing alpha is scaled
linearly, which keeps anti-aliased edges smooth.
"""

import re
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image

from src.core.logging import with_logging
from src.core.metrics import track_stage_latency

FEATHER_WIDTH = 30
CORNER_INSET = 2

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class MattingParams:
    target_hex: str
    tolerance: int = 40
    feather: int = FEATHER_WIDTH

    def __post_init__(self):
        parse_hex(self.target_hex)
        if not 0 <= self.tolerance <= 255:
            raise ValueError(f"tolerance must be within 0-255, got {self.tolerance}")


def parse_hex(value: str) -> Tuple[int, int, int]:
    match = _HEX_RE.match(value.strip()) if value else None
    if not match:
        raise ValueError(f"Invalid hex color: {value!r}")
    digits = match.group(1)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


def to_hex(rgb: Tuple[int, int, int]) -> str:
    return "#" + "".join(f"{channel:02x}" for channel in rgb)


@with_logging("matting")
def remove_color_background(image: Image.Image, target_hex: str, tolerance: int) -> Image.Image:
    """Return a new RGBA image with the target color keyed out."""
    params = MattingParams(target_hex=target_hex, tolerance=tolerance)
    target = np.array(parse_hex(params.target_hex), dtype=np.int16)

    with track_stage_latency("matting"):
        pixels = np.array(image.convert("RGBA"), dtype=np.int16)
        distance = np.abs(pixels[..., :3] - target).max(axis=-1)
        alpha = pixels[..., 3].astype(np.float64)

        inside = distance <= params.tolerance
        feathered = (~inside) & (distance <= params.tolerance + params.feather)

        factor = (distance - params.tolerance) / params.feather
        # Halves round up
        alpha = np.where(feathered, np.floor(alpha * factor + 0.5), alpha)
        alpha = np.where(inside, 0, alpha)

        pixels[..., 3] = alpha.astype(np.int16)
        return Image.fromarray(pixels.astype(np.uint8))


def detect_bg_color(image: Image.Image) -> str:
    """Propose a matting color from the average of the four corners.

    Assumes the background reaches every corner of the image.
    """
    rgb = image.convert("RGB")
    width, height = rgb.size
    left, top = min(CORNER_INSET, width - 1), min(CORNER_INSET, height - 1)
    right, bottom = max(width - 1 - CORNER_INSET, 0), max(height - 1 - CORNER_INSET, 0)

    corners = [
        rgb.getpixel((left, top)),
        rgb.getpixel((right, top)),
        rgb.getpixel((left, bottom)),
        rgb.getpixel((right, bottom)),
    ]
    average = tuple(
        int(round(sum(corner[channel] for corner in corners) / 4)) for channel in range(3)
    )
    return to_hex(average)
