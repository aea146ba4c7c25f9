"""
OpenAI GPT Image provider.

Immediate completion: one POST returns the image inline as base64.
"""

from typing import Any, Dict

from src.core.exceptions import ErrorCode, ProviderError
from src.engines.providers.base import ProviderHandler, error_detail
from src.engines.providers.sizes import map_to_provider_size
from src.engines.providers.types import GenerationRequest, GenerationResult, ProviderId, Quality

GENERATIONS_PATH = "/v1/images/generations"

# gpt-image-1 grades quality on its own low/medium/high scale
QUALITY_LEVELS = {
    Quality.DRAFT: "low",
    Quality.STANDARD: "medium",
    Quality.HD: "high",
}
DEFAULT_QUALITY = "medium"


class OpenAIProvider(ProviderHandler):
    provider_id = ProviderId.OPENAI
    credential_check_path = "/v1/models"

    def build_payload(self, request: GenerationRequest) -> Dict[str, Any]:
        width, height = map_to_provider_size(self.provider_id.value, request.width, request.height)
        return {
            "model": self.config.default_model,
            "prompt": request.prompt,
            "size": f"{width}x{height}",
            "quality": QUALITY_LEVELS.get(request.quality, DEFAULT_QUALITY),
            "n": request.count,
        }

    async def _generate(self, request: GenerationRequest, api_key: str) -> GenerationResult:
        payload = self.build_payload(request)

        async with self.client() as client:
            response = await client.post(GENERATIONS_PATH, json=payload, headers=self.auth_headers(api_key))

        if not response.is_success:
            raise ProviderError(
                ErrorCode.API_ERROR,
                f"OpenAI API error ({response.status_code}): {error_detail(response, 'error')}",
                http_status=response.status_code,
            )

        data = response.json().get("data") or []
        b64 = data[0].get("b64_json") if data else None
        if not b64:
            raise ProviderError(ErrorCode.NO_IMAGE_RETURNED, "No image data returned from OpenAI API")

        return GenerationResult.from_base64(
            self.provider_id.value,
            f"data:image/png;base64,{b64}",
            model=payload["model"],
        )
