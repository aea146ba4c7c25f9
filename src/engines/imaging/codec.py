"""Data-URI / base64 helpers for moving images in and out of the pipeline."""

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from src.core.exceptions import ImageProcessingError


def decode_image_bytes(payload: str) -> bytes:
    """Raw bytes from a data URI ("data:image/png;base64,...") or bare base64."""
    if not payload:
        raise ImageProcessingError("No image provided")
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
        if not payload:
            raise ImageProcessingError("Invalid image data URI")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"Invalid base64 image data: {e}")


def open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ImageProcessingError(f"Unreadable image: {e}")
    return image


def decode_data_uri(payload: str) -> Image.Image:
    return open_image(decode_image_bytes(payload))


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_uri(image: Image.Image) -> str:
    encoded = base64.b64encode(encode_png(image)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
