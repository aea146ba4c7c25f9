"""
Image Tool Endpoints

POST /api/v1/tools/remove-background     - Chroma-key matting (auto color when omitted)
POST /api/v1/tools/ai-remove-background  - Subject cut-out via Stability AI
POST /api/v1/tools/detect-background     - Propose a matting color
POST /api/v1/tools/resize                - Resize to exact dimensions
POST /api/v1/tools/crop                  - Crop to an aspect ratio (top-anchored when tall)
POST /api/v1/tools/variants              - Center-cropped asset renditions
POST /api/v1/tools/extend-plan           - Outpaint padding plan under size ceilings
POST /api/v1/tools/outpaint              - Plan, downscale and outpaint via Stability AI

Pixel work runs in worker threads so it never blocks the event loop.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.api.dependencies import get_dispatcher
from src.core.config import settings
from src.core.exceptions import ErrorCode, ImageProcessingError
from src.core.logging import get_logger
from src.engines.imaging.codec import decode_data_uri, encode_png, to_data_uri
from src.engines.imaging.extension import ExtensionPlan, calc_extensions, prepare_for_outpaint, scale_plan
from src.engines.imaging.matting import detect_bg_color, remove_color_background
from src.engines.imaging.transform import (
    create_asset_variants,
    crop_to_aspect_ratio,
    parse_ratio,
    resize_image,
)
from src.engines.providers.dispatcher import Dispatcher
from src.engines.providers.types import PROVIDER_CONFIGS, GenerationResult, ProviderId

logger = get_logger(__name__)
router = APIRouter()

MAX_IMAGE_SIZE_BYTES = settings.MAX_IMAGE_SIZE_BYTES
MAX_IMAGE_SIZE_MB = MAX_IMAGE_SIZE_BYTES / (1024 * 1024)


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ImagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image: str = Field(..., description="Base64 data URI of the source image")

    @field_validator("image")
    @classmethod
    def validate_image_size(cls, v: str) -> str:
        decoded_size_bytes = len(v) * 3 / 4  # Approximate decoded size
        if decoded_size_bytes > MAX_IMAGE_SIZE_BYTES:
            actual_size_mb = decoded_size_bytes / (1024 * 1024)
            raise ValueError(
                f"Image size ({actual_size_mb:.2f}MB) exceeds maximum ({MAX_IMAGE_SIZE_MB:.0f}MB)."
            )
        return v


class RemoveBackgroundRequest(ImagePayload):
    color: Optional[str] = Field(None, description="Hex color to key out; detected from corners when omitted")
    tolerance: int = Field(40, ge=0, le=255)


class AIRemoveBackgroundRequest(ImagePayload):
    api_key: Optional[str] = Field(None, alias="apiKey", repr=False)


class ResizeRequest(ImagePayload):
    width: int = Field(..., gt=0, le=8192)
    height: int = Field(..., gt=0, le=8192)


class CropRequest(ImagePayload):
    ratio: str = Field(..., description='Target aspect ratio, e.g. "16:9"')


class VariantsRequest(ImagePayload):
    variants: List[str] = Field(..., min_length=1)


class ExtendRequest(ImagePayload):
    ratio: str = Field(..., description='Target aspect ratio, e.g. "16:9"')


class OutpaintRequest(ExtendRequest):
    prompt: Optional[str] = Field(None, max_length=2000)
    creativity: float = 0.25
    api_key: Optional[str] = Field(None, alias="apiKey", repr=False)


class ImageResponse(BaseModel):
    success: bool = True
    image: str
    width: int
    height: int
    color: Optional[str] = None


class ExtensionPlanResponse(BaseModel):
    success: bool = True
    plan: Dict[str, float]
    noop: bool


def _ratio(value: str) -> Tuple[int, int]:
    try:
        return parse_ratio(value)
    except ValueError as e:
        raise ImageProcessingError(str(e), error_code=ErrorCode.INVALID_REQUEST)


def _stability_key(dispatcher: Dispatcher, override: Optional[str], purpose: str):
    """Resolved Stability AI key, or the failed result to return instead."""
    config = PROVIDER_CONFIGS[ProviderId.STABILITY]
    api_key = dispatcher.resolve_credential(config, override)
    if api_key:
        return api_key, None
    return None, GenerationResult.failure(
        config.id.value,
        ErrorCode.MISSING_API_KEY,
        f"API key for {config.name} is required for {purpose}. Set {config.env_key_name}.",
    )


# =============================================================================
# Synchronous Pixel Work (run via asyncio.to_thread)
# =============================================================================

def _image_response(image, color: Optional[str] = None) -> ImageResponse:
    return ImageResponse(image=to_data_uri(image), width=image.width, height=image.height, color=color)


def _sync_remove_background(payload: str, color: Optional[str], tolerance: int) -> ImageResponse:
    source = decode_data_uri(payload)
    color = color or detect_bg_color(source)
    try:
        result = remove_color_background(source, color, tolerance)
    except ValueError as e:
        raise ImageProcessingError(str(e), error_code=ErrorCode.INVALID_REQUEST)

    logger.info("background_removed", color=color, tolerance=tolerance, size=source.size)
    return _image_response(result, color=color)


def _sync_detect_background(payload: str) -> str:
    return detect_bg_color(decode_data_uri(payload))


def _sync_resize(payload: str, width: int, height: int) -> ImageResponse:
    return _image_response(resize_image(decode_data_uri(payload), width, height))


def _sync_crop(payload: str, ratio: Tuple[int, int]) -> ImageResponse:
    return _image_response(crop_to_aspect_ratio(decode_data_uri(payload), ratio))


def _sync_variants(payload: str, keys: List[str]) -> Dict[str, Dict[str, Any]]:
    source = decode_data_uri(payload)
    try:
        renditions = create_asset_variants(source, keys)
    except ValueError as e:
        raise ImageProcessingError(str(e), error_code=ErrorCode.INVALID_REQUEST)
    return {
        key: {"image": to_data_uri(image), "width": image.width, "height": image.height}
        for key, image in renditions.items()
    }


def _sync_extend_plan(payload: str, ratio: Tuple[int, int]) -> Tuple[ExtensionPlan, ExtensionPlan]:
    source = decode_data_uri(payload)
    plan = calc_extensions(source.width, source.height, *ratio)
    return plan, scale_plan(plan, settings.OUTPAINT_MAX_PIXELS, settings.OUTPAINT_MAX_EXTENSION)


def _sync_prepare_outpaint(payload: str, ratio: Tuple[int, int]) -> Tuple[bytes, ExtensionPlan]:
    source = decode_data_uri(payload)
    plan = calc_extensions(source.width, source.height, *ratio)
    image, plan = prepare_for_outpaint(
        source, plan, settings.OUTPAINT_MAX_PIXELS, settings.OUTPAINT_MAX_EXTENSION
    )
    return encode_png(image), plan


def _sync_normalize_png(payload: str) -> bytes:
    return encode_png(decode_data_uri(payload))


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/remove-background", response_model=ImageResponse, response_model_exclude_none=True)
async def remove_background(request: RemoveBackgroundRequest):
    return await asyncio.to_thread(
        _sync_remove_background, request.image, request.color, request.tolerance
    )


@router.post("/ai-remove-background", response_model=GenerationResult, response_model_exclude_none=True)
async def ai_remove_background(
    request: AIRemoveBackgroundRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Remove the background with Stability AI's segmentation model.

    Unlike /remove-background this needs no key color, but it calls an
    upstream API. Upstream failures come back as a GenerationResult error.
    """
    api_key, missing = _stability_key(dispatcher, request.api_key, "background removal")
    if missing:
        return missing

    image_png = await asyncio.to_thread(_sync_normalize_png, request.image)
    stability = dispatcher.handler_for(ProviderId.STABILITY)
    return await stability.remove_background(image_png, api_key)


@router.post("/detect-background")
async def detect_background(request: ImagePayload):
    color = await asyncio.to_thread(_sync_detect_background, request.image)
    return {"success": True, "color": color}


@router.post("/resize", response_model=ImageResponse, response_model_exclude_none=True)
async def resize(request: ResizeRequest):
    return await asyncio.to_thread(_sync_resize, request.image, request.width, request.height)


@router.post("/crop", response_model=ImageResponse, response_model_exclude_none=True)
async def crop(request: CropRequest):
    return await asyncio.to_thread(_sync_crop, request.image, _ratio(request.ratio))


@router.post("/variants")
async def variants(request: VariantsRequest):
    renditions = await asyncio.to_thread(_sync_variants, request.image, request.variants)
    return {"success": True, "variants": renditions}


@router.post("/extend-plan", response_model=ExtensionPlanResponse)
async def extend_plan(request: ExtendRequest):
    plan, scaled = await asyncio.to_thread(_sync_extend_plan, request.image, _ratio(request.ratio))
    return ExtensionPlanResponse(plan=scaled.to_dict(), noop=plan.is_noop)


@router.post("/outpaint", response_model=GenerationResult, response_model_exclude_none=True)
async def outpaint(
    request: OutpaintRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Extend an image to a new aspect ratio with AI-generated fill.

    Like /generate, upstream failures come back as a GenerationResult error.
    """
    api_key, missing = _stability_key(dispatcher, request.api_key, "outpainting")
    if missing:
        return missing

    image_png, plan = await asyncio.to_thread(
        _sync_prepare_outpaint, request.image, _ratio(request.ratio)
    )
    stability = dispatcher.handler_for(ProviderId.STABILITY)
    return await stability.outpaint(
        image_png,
        plan,
        api_key,
        prompt=request.prompt,
        creativity=request.creativity,
    )
