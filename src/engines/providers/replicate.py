"""
Replicate provider (Flux by default).

Job-based completion: resolve the model's latest version, create a
prediction, then wait on the prediction's status URL.
"""

from functools import partial
from typing import Any, Dict, Optional

from src.core.exceptions import ErrorCode, ProviderError
from src.core.logging import get_logger
from src.engines.providers.base import ProviderHandler, error_detail
from src.engines.providers.polling import AsyncJobPoller
from src.engines.providers.sizes import aspect_ratio_label
from src.engines.providers.types import GenerationRequest, GenerationResult, ProviderId

logger = get_logger(__name__)

MODEL_PATH = "/v1/models/{model}"
PREDICTIONS_PATH = "/v1/predictions"


class ReplicateProvider(ProviderHandler):
    provider_id = ProviderId.REPLICATE
    credential_check_path = "/v1/account"

    def __init__(
        self,
        *args,
        poll_timeout_ms: int = 120000,
        poll_interval: float = 1.0,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.poll_timeout_ms = poll_timeout_ms
        # Status checks never get more time than the whole poll budget
        poll_client_timeout = min(self.timeout, poll_timeout_ms / 1000.0)
        self.poller = AsyncJobPoller(
            partial(self.client, timeout=poll_client_timeout),
            self.provider_id.value,
            interval=poll_interval,
        )

    async def get_model_version(self, model: str, api_key: str) -> str:
        # Not cached: the latest version can move between calls
        async with self.client() as client:
            response = await client.get(MODEL_PATH.format(model=model), headers=self.auth_headers(api_key))

        if not response.is_success:
            raise ProviderError(
                ErrorCode.API_ERROR,
                f"Failed to get model info: {error_detail(response, 'detail')}",
                http_status=response.status_code,
            )

        version = (response.json().get("latest_version") or {}).get("id")
        if not version:
            raise ProviderError(ErrorCode.API_ERROR, f"Model version not found for {model}")
        return version

    def build_input(self, request: GenerationRequest) -> Dict[str, Any]:
        return {
            "prompt": request.prompt,
            "aspect_ratio": aspect_ratio_label(request.width, request.height),
            "num_outputs": request.count,
            "output_format": "png",
            "output_quality": 90,
        }

    async def _generate(self, request: GenerationRequest, api_key: str) -> GenerationResult:
        model = self.config.default_model
        version = await self.get_model_version(model, api_key)

        async with self.client() as client:
            response = await client.post(
                PREDICTIONS_PATH,
                json={"version": version, "input": self.build_input(request)},
                headers=self.auth_headers(api_key),
            )

        if not response.is_success:
            raise ProviderError(
                ErrorCode.API_ERROR,
                f"Replicate API error: {error_detail(response, 'detail')}",
                http_status=response.status_code,
            )

        prediction = response.json()
        status_url: Optional[str] = (prediction.get("urls") or {}).get("get")
        if not status_url:
            raise ProviderError(ErrorCode.API_ERROR, "Replicate did not return a status URL")

        logger.info("prediction_created", job_id=prediction.get("id"), version=version)
        return await self.poller.poll_for_completion(
            status_url,
            api_key,
            self.poll_timeout_ms,
            job_id=prediction.get("id"),
            model=model,
        )
