"""
Stability AI provider.

Text-to-image and image-to-image use the v1 generation API, which takes a
weighted prompt list and answers immediately with either inline base64
artifacts or a URL. Outpainting and background removal use the v2beta edit
API and answer with raw image bytes.
"""

import base64
from typing import Any, Dict, List, Optional

import httpx

from src.core.exceptions import ErrorCode, ImageProcessingError, ProviderError
from src.core.logging import LogContext, get_logger
from src.engines.imaging.codec import decode_image_bytes
from src.engines.imaging.extension import ExtensionPlan
from src.engines.providers.base import ProviderHandler, error_detail
from src.engines.providers.sizes import map_to_provider_size
from src.engines.providers.types import GenerationRequest, GenerationResult, ProviderId, Style

logger = get_logger(__name__)

TEXT_TO_IMAGE_PATH = "/v1/generation/{engine}/text-to-image"
IMAGE_TO_IMAGE_PATH = "/v1/generation/{engine}/image-to-image"
OUTPAINT_PATH = "/v2beta/stable-image/edit/outpaint"
REMOVE_BACKGROUND_PATH = "/v2beta/stable-image/edit/remove-background"
OUTPAINT_MODEL = "stable-image-outpaint"
REMOVE_BACKGROUND_MODEL = "stable-image-remove-background"

STYLE_PRESETS = {
    Style.NATURAL: "photographic",
    Style.VIVID: "enhance",
}

MAX_OUTPAINT_EXTENSION = 2048

# Image-to-image: strength is how far to move away from the init image,
# the upstream image_strength is how much of it to keep
DEFAULT_IMG2IMG_STRENGTH = 0.5
MIN_IMAGE_STRENGTH = 0.01
MAX_IMAGE_STRENGTH = 0.99

# Upstream statuses that get their own code on the edit endpoints
EDIT_STATUS_CODES = {
    401: (ErrorCode.INVALID_API_KEY, "Invalid Stability AI API key."),
    402: (ErrorCode.INSUFFICIENT_CREDITS, "Insufficient Stability AI credits."),
    429: (ErrorCode.RATE_LIMITED, "Rate limited by Stability AI. Please try again in a moment."),
}


def build_text_prompts(prompt: str, negative_prompt: Optional[str]) -> List[Dict[str, Any]]:
    prompts = [{"text": prompt, "weight": 1}]
    if negative_prompt:
        prompts.append({"text": negative_prompt, "weight": -1})
    return prompts


def image_strength(strength: Optional[float]) -> float:
    change = DEFAULT_IMG2IMG_STRENGTH if strength is None else strength
    return max(MIN_IMAGE_STRENGTH, min(MAX_IMAGE_STRENGTH, 1 - change))


class StabilityProvider(ProviderHandler):
    provider_id = ProviderId.STABILITY
    credential_check_path = "/v1/user/account"

    def __init__(
        self,
        *args,
        outpaint_timeout: float = 90.0,
        remove_background_timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.outpaint_timeout = outpaint_timeout
        self.remove_background_timeout = remove_background_timeout

    def build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        width, height = map_to_provider_size(self.provider_id.value, request.width, request.height)
        payload: Dict[str, Any] = {
            "text_prompts": build_text_prompts(request.prompt, request.negative_prompt),
            "width": width,
            "height": height,
            "samples": request.count,
        }
        if request.style in STYLE_PRESETS:
            payload["style_preset"] = STYLE_PRESETS[request.style]
        return payload

    def build_img2img_form(self, request: GenerationRequest) -> Dict[str, str]:
        """Multipart fields for image-to-image. Output size follows the init image."""
        form = {
            "init_image_mode": "IMAGE_STRENGTH",
            "image_strength": f"{image_strength(request.strength):.3f}",
            "samples": str(request.count),
        }
        for i, prompt in enumerate(build_text_prompts(request.prompt, request.negative_prompt)):
            form[f"text_prompts[{i}][text]"] = prompt["text"]
            form[f"text_prompts[{i}][weight]"] = str(prompt["weight"])
        if request.style in STYLE_PRESETS:
            form["style_preset"] = STYLE_PRESETS[request.style]
        return form

    async def _generate(self, request: GenerationRequest, api_key: str) -> GenerationResult:
        engine = self.config.default_model
        headers = {**self.auth_headers(api_key), "Accept": "application/json"}

        async with self.client() as client:
            if request.init_image:
                init_image = await self._load_init_image(client, request.init_image)
                logger.info("img2img_started", image_strength=image_strength(request.strength))
                response = await client.post(
                    IMAGE_TO_IMAGE_PATH.format(engine=engine),
                    data=self.build_img2img_form(request),
                    files={"init_image": ("image.png", init_image, "image/png")},
                    headers=headers,
                )
            else:
                response = await client.post(
                    TEXT_TO_IMAGE_PATH.format(engine=engine), json=self.build_payload(request), headers=headers
                )

        if not response.is_success:
            raise ProviderError(
                ErrorCode.API_ERROR,
                f"Stability API error ({response.status_code}): {error_detail(response, 'message', 'name')}",
                http_status=response.status_code,
            )

        body = response.json()
        artifacts = body.get("artifacts") or []
        first = artifacts[0] if artifacts else {}
        if first.get("finishReason") == "ERROR":
            first = {}

        if first.get("base64"):
            return GenerationResult.from_base64(
                self.provider_id.value, f"data:image/png;base64,{first['base64']}", model=engine
            )

        url = first.get("url") or body.get("url")
        if url:
            return GenerationResult.from_url(self.provider_id.value, url, model=engine)

        raise ProviderError(ErrorCode.NO_IMAGE_RETURNED, "No image returned from Stability API")

    async def _load_init_image(self, client: httpx.AsyncClient, source: str) -> bytes:
        """Init image bytes from a data URI, bare base64 or an http(s) URL."""
        if source.startswith(("http://", "https://")):
            response = await client.get(source)
            if not response.is_success:
                raise ProviderError(
                    ErrorCode.INVALID_IMAGE,
                    f"Could not fetch init image ({response.status_code})",
                    http_status=response.status_code,
                )
            return response.content
        try:
            return decode_image_bytes(source)
        except ImageProcessingError as e:
            raise ProviderError(ErrorCode.INVALID_IMAGE, e.message)

    # ==========================================================================
    # Edit endpoints (v2beta)
    # ==========================================================================

    async def outpaint(
        self,
        image_png: bytes,
        plan: ExtensionPlan,
        api_key: str,
        prompt: Optional[str] = None,
        creativity: float = 0.25,
        output_format: str = "png",
    ) -> GenerationResult:
        """Extend the canvas of image_png by the plan's paddings. Never raises."""
        with LogContext(provider=self.provider_id.value, stage="outpaint"):
            try:
                return await self._outpaint(image_png, plan, api_key, prompt, creativity, output_format)
            except Exception as e:
                return self._edit_failure("outpaint", e)

    async def remove_background(
        self,
        image_png: bytes,
        api_key: str,
        output_format: str = "png",
    ) -> GenerationResult:
        """Cut the subject out of image_png with Stability's segmentation model. Never raises."""
        with LogContext(provider=self.provider_id.value, stage="remove_background"):
            try:
                return await self._post_edit(
                    REMOVE_BACKGROUND_PATH,
                    image_png,
                    {"output_format": output_format},
                    api_key,
                    timeout=self.remove_background_timeout,
                    model=REMOVE_BACKGROUND_MODEL,
                )
            except Exception as e:
                return self._edit_failure("remove_background", e)

    def _edit_failure(self, operation: str, error: Exception) -> GenerationResult:
        provider = self.provider_id.value
        if isinstance(error, ProviderError):
            return GenerationResult.failure(provider, error.error_code, error.message)
        logger.error(f"{operation}_crashed", error=str(error), error_type=type(error).__name__)
        return GenerationResult.failure(
            provider, ErrorCode.GENERATION_FAILED, f"Stability AI {operation.replace('_', ' ')} failed: {error}"
        )

    async def _outpaint(
        self,
        image_png: bytes,
        plan: ExtensionPlan,
        api_key: str,
        prompt: Optional[str],
        creativity: float,
        output_format: str,
    ) -> GenerationResult:
        sides = plan.paddings()
        if not any(sides.values()):
            raise ProviderError(
                ErrorCode.NO_EXTENSION,
                "At least one direction (left, right, top, bottom) must be greater than 0.",
            )
        if any(value > MAX_OUTPAINT_EXTENSION for value in sides.values()):
            raise ProviderError(
                ErrorCode.EXTENSION_TOO_LARGE,
                f"Each extension value must be {MAX_OUTPAINT_EXTENSION} pixels or less.",
            )

        data = {side: str(value) for side, value in sides.items() if value > 0}
        if prompt:
            data["prompt"] = prompt
        data["creativity"] = str(max(0.0, min(1.0, creativity)))
        data["output_format"] = output_format

        logger.info("outpaint_started", creativity=data["creativity"], **sides)
        return await self._post_edit(
            OUTPAINT_PATH, image_png, data, api_key, timeout=self.outpaint_timeout, model=OUTPAINT_MODEL
        )

    async def _post_edit(
        self,
        path: str,
        image_png: bytes,
        data: Dict[str, str],
        api_key: str,
        timeout: float,
        model: str,
    ) -> GenerationResult:
        headers = {**self.auth_headers(api_key), "Accept": "image/*"}
        async with self.client(timeout=timeout) as client:
            response = await client.post(
                path,
                data=data,
                files={"image": ("image.png", image_png, "image/png")},
                headers=headers,
            )

        if not response.is_success:
            code, message = EDIT_STATUS_CODES.get(
                response.status_code,
                (ErrorCode.API_ERROR, f"Stability API error ({response.status_code}): "
                                      f"{error_detail(response, 'message', 'name')}"),
            )
            raise ProviderError(code, message, http_status=response.status_code)

        mime = "image/jpeg" if data.get("output_format") == "jpeg" else "image/png"
        encoded = base64.b64encode(response.content).decode("ascii")
        logger.info("edit_completed", model=model, output_size=len(response.content))
        return GenerationResult.from_base64(
            self.provider_id.value, f"data:{mime};base64,{encoded}", model=model
        )
