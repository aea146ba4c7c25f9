"""Resize and crop helpers. All functions return new RGBA images."""

from typing import Dict, Iterable, Tuple, Union

from PIL import Image, ImageOps

from src.core.metrics import track_stage_latency

Ratio = Union[str, Tuple[int, int]]


def parse_ratio(ratio: Ratio) -> Tuple[int, int]:
    """Accept "16:9" or (16, 9)."""
    if isinstance(ratio, str):
        parts = ratio.replace("x", ":").split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid aspect ratio: {ratio!r}")
        try:
            rw, rh = int(parts[0]), int(parts[1])
        except ValueError:
            raise ValueError(f"Invalid aspect ratio: {ratio!r}")
    else:
        rw, rh = ratio
    if rw <= 0 or rh <= 0:
        raise ValueError(f"Aspect ratio terms must be positive: {ratio!r}")
    return rw, rh


def resize_image(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to exactly width x height with Lanczos filtering, keeping alpha."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Target size must be positive, got {width}x{height}")
    with track_stage_latency("resize"):
        return image.convert("RGBA").resize((width, height), Image.Resampling.LANCZOS)


def crop_to_aspect_ratio(image: Image.Image, ratio: Ratio) -> Image.Image:
    """Crop to ratio without scaling.

    Wider sources lose equal amounts from left and right. Taller sources
    keep their top and lose only the bottom, since subjects are usually
    framed near the top.
    """
    rw, rh = parse_ratio(ratio)
    width, height = image.size
    source = image.convert("RGBA")

    with track_stage_latency("crop"):
        if width * rh > height * rw:
            crop_w = height * rw // rh
            left = (width - crop_w) // 2
            return source.crop((left, 0, left + crop_w, height))
        if width * rh < height * rw:
            crop_h = width * rh // rw
            return source.crop((0, 0, width, crop_h))
        return source.copy()


def center_crop(image: Image.Image, width: int, height: int) -> Image.Image:
    """Cover-fit to width x height, cropping evenly around the center."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Target size must be positive, got {width}x{height}")
    with track_stage_latency("center_crop"):
        return ImageOps.fit(
            image.convert("RGBA"),
            (width, height),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )


# Named renditions cut from a 16:9 master
ASSET_VARIANTS: Dict[str, Tuple[int, int]] = {
    "hero_wide": (1792, 768),
    "card_4x3": (800, 600),
    "card_3x2": (600, 400),
    "square": (600, 600),
}


def create_asset_variants(image: Image.Image, variants: Iterable[str]) -> Dict[str, Image.Image]:
    """Center-cropped rendition of image for each requested variant key."""
    results = {}
    for key in variants:
        if key not in ASSET_VARIANTS:
            raise ValueError(f"Unknown asset variant: {key}")
        results[key] = center_crop(image, *ASSET_VARIANTS[key])
    return results
