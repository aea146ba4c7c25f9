"""
Canvas extension planning for outpainting.

calc_extensions() works out how much canvas to add around an image so it
reaches a target aspect ratio without cropping anything. prepare_for_outpaint()
then shrinks the image and the paddings together when the result would be
bigger than the outpainting endpoint accepts.
"""

import math
from dataclasses import asdict, dataclass, replace
from typing import Dict, Tuple

from PIL import Image

from src.core.logging import get_logger
from src.engines.imaging.transform import resize_image

logger = get_logger(__name__)

MAX_OUTPAINT_PIXELS = 4_000_000
MAX_SIDE_EXTENSION = 2048


@dataclass(frozen=True)
class ExtensionPlan:
    width: int
    height: int
    left: int = 0
    right: int = 0
    top: int = 0
    bottom: int = 0
    scale: float = 1.0

    @property
    def new_width(self) -> int:
        return self.width + self.left + self.right

    @property
    def new_height(self) -> int:
        return self.height + self.top + self.bottom

    @property
    def area(self) -> int:
        return self.new_width * self.new_height

    @property
    def is_noop(self) -> bool:
        return not any(self.paddings().values())

    def paddings(self) -> Dict[str, int]:
        return {"left": self.left, "right": self.right, "top": self.top, "bottom": self.bottom}

    def to_dict(self) -> Dict[str, float]:
        data = asdict(self)
        data.update(new_width=self.new_width, new_height=self.new_height)
        return data


def _split(total: int) -> Tuple[int, int]:
    # Odd remainder goes to the trailing edge
    return total // 2, total - total // 2


def calc_extensions(src_w: int, src_h: int, ratio_w: int, ratio_h: int) -> ExtensionPlan:
    """Paddings that bring src_w x src_h to ratio_w:ratio_h. Never crops."""
    if min(src_w, src_h) <= 0 or min(ratio_w, ratio_h) <= 0:
        raise ValueError("source size and target ratio must be positive")

    target = ratio_w / ratio_h
    new_w, new_h = src_w, src_h

    # Cross-multiplied so equal ratios compare exactly
    if src_w * ratio_h < src_h * ratio_w:
        new_w = round(src_h * target)
    elif src_w * ratio_h > src_h * ratio_w:
        new_h = round(src_w / target)

    left, right = _split(max(0, new_w - src_w))
    top, bottom = _split(max(0, new_h - src_h))
    return ExtensionPlan(width=src_w, height=src_h, left=left, right=right, top=top, bottom=bottom)


def outpaint_scale(
    plan: ExtensionPlan,
    max_area: int = MAX_OUTPAINT_PIXELS,
    max_extension: int = MAX_SIDE_EXTENSION,
) -> float:
    scale = 1.0
    if plan.area > max_area:
        scale = math.sqrt(max_area / plan.area)
    for side in plan.paddings().values():
        if side > max_extension:
            scale = min(scale, max_extension / side)
    return scale


def scale_plan(
    plan: ExtensionPlan,
    max_area: int = MAX_OUTPAINT_PIXELS,
    max_extension: int = MAX_SIDE_EXTENSION,
) -> ExtensionPlan:
    """The plan shrunk uniformly until both ceilings hold, without touching pixels.

    Scaled sizes are floored so rounding can never push the result over a
    ceiling. Returns plan itself when no downscale is needed.
    """
    scale = outpaint_scale(plan, max_area, max_extension)
    if scale >= 1:
        return plan

    def shrink(value: int) -> int:
        return int(math.floor(value * scale))

    return replace(
        plan,
        width=max(1, shrink(plan.width)),
        height=max(1, shrink(plan.height)),
        left=shrink(plan.left),
        right=shrink(plan.right),
        top=shrink(plan.top),
        bottom=shrink(plan.bottom),
        scale=scale,
    )


def prepare_for_outpaint(
    image: Image.Image,
    plan: ExtensionPlan,
    max_area: int = MAX_OUTPAINT_PIXELS,
    max_extension: int = MAX_SIDE_EXTENSION,
) -> Tuple[Image.Image, ExtensionPlan]:
    """Downscale image and plan together until both ceilings hold.

    Returns the inputs unchanged when no downscale is needed.
    """
    scaled = scale_plan(plan, max_area, max_extension)
    if scaled is plan:
        return image, plan

    logger.info(
        "outpaint_downscaled",
        scale=round(scaled.scale, 4),
        source=(image.width, image.height),
        target=(scaled.width, scaled.height),
        result=(scaled.new_width, scaled.new_height),
    )
    return resize_image(image, scaled.width, scaled.height), scaled
