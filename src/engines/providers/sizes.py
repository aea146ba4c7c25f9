"""
Provider size mapping.

Upstream providers only accept a fixed set of output sizes. These helpers map
an arbitrary requested width/height onto the nearest bucket a provider
supports. All functions are pure.
"""

from typing import Tuple

from src.engines.providers.types import supported_sizes

_STABILITY_WIDE = (1216, 832)
_STABILITY_TALL = (832, 1216)
_STABILITY_SLIGHTLY_WIDE = (1152, 896)
_STABILITY_SLIGHTLY_TALL = (896, 1152)
_SQUARE = (1024, 1024)

_DEFAULT_WIDE = (1536, 1024)
_DEFAULT_TALL = (1024, 1536)

# Ordered aspect-ratio labels used by job-based providers
ASPECT_RATIO_THRESHOLDS = (
    (1.7, "16:9"),
    (1.4, "3:2"),
    (1.1, "4:3"),
    (0.9, "1:1"),
    (0.7, "3:4"),
    (0.55, "2:3"),
)
TALLEST_ASPECT_RATIO = "9:16"


def _ratio(width: int, height: int) -> float:
    if width <= 0 or height <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")
    return width / height


def map_to_provider_size(provider: str, width: int, height: int) -> Tuple[int, int]:
    """Return the provider-supported (width, height) closest to the request.

    An exact supported "WxH" is returned unchanged. Unrecognized providers
    fall back to the default wide/tall/square bucketing.
    """
    ratio = _ratio(width, height)
    if f"{width}x{height}" in supported_sizes(provider):
        return width, height

    if provider == "stability":
        if ratio > 1.5:
            return _STABILITY_WIDE
        if ratio < 0.67:
            return _STABILITY_TALL
        if ratio > 1.1:
            return _STABILITY_SLIGHTLY_WIDE
        if ratio < 0.9:
            return _STABILITY_SLIGHTLY_TALL
        return _SQUARE

    if ratio > 1.3:
        return _DEFAULT_WIDE
    if ratio < 0.77:
        return _DEFAULT_TALL
    return _SQUARE


def aspect_ratio_label(width: int, height: int) -> str:
    """Bucket width/height into the nearest "W:H" label, widest first."""
    ratio = _ratio(width, height)
    for threshold, label in ASPECT_RATIO_THRESHOLDS:
        if ratio >= threshold:
            return label
    return TALLEST_ASPECT_RATIO
