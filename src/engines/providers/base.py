"""
Provider handler contract.

Every upstream provider sits behind ProviderHandler.generate(), which never
raises: ProviderError and unexpected exceptions raised by a concrete
handler's _generate() are converted to a failed GenerationResult here.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from src.core.exceptions import ErrorCode, ProviderError
from src.core.logging import LogContext, get_logger
from src.core.metrics import record_provider_call
from src.engines.providers.types import (
    PROVIDER_CONFIGS,
    GenerationRequest,
    GenerationResult,
    ProviderConfig,
    ProviderId,
)

logger = get_logger(__name__)


class ProviderHandler(ABC):
    provider_id: ProviderId
    # Path hit with the caller's key to check that it is accepted
    credential_check_path: str = ""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @property
    def config(self) -> ProviderConfig:
        return PROVIDER_CONFIGS[self.provider_id]

    @property
    def name(self) -> str:
        return self.config.name

    def client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        """New HTTP client for one call; handlers keep no connection state."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
        )

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def generate(self, request: GenerationRequest, api_key: str) -> GenerationResult:
        provider = self.provider_id.value
        start = time.perf_counter()
        with LogContext(provider=provider):
            logger.info(
                "provider_request_started",
                width=request.width,
                height=request.height,
                count=request.count,
            )
            try:
                result = await self._generate(request, api_key)
            except ProviderError as e:
                result = GenerationResult.failure(provider, e.error_code, e.message)
            except Exception as e:
                logger.error("provider_request_crashed", error=str(e), error_type=type(e).__name__)
                result = GenerationResult.failure(
                    provider,
                    ErrorCode.GENERATION_FAILED,
                    f"{self.name} generation failed: {e}",
                )

            duration = time.perf_counter() - start
            outcome = "success" if result.success else result.error.code.value
            record_provider_call(provider, outcome, duration)
            log = logger.info if result.success else logger.warning
            log(
                "provider_request_completed",
                success=result.success,
                outcome=outcome,
                duration_ms=int(duration * 1000),
            )
            return result

    @abstractmethod
    async def _generate(self, request: GenerationRequest, api_key: str) -> GenerationResult:
        """Call the upstream API. May raise ProviderError or any other exception."""

    async def validate_credential(self, api_key: str) -> bool:
        if not self.credential_check_path:
            return False
        try:
            async with self.client() as client:
                response = await client.get(self.credential_check_path, headers=self.auth_headers(api_key))
        except httpx.HTTPError as e:
            logger.warning("credential_check_failed", provider=self.provider_id.value, error=str(e))
            return False
        return response.is_success


def error_detail(response: httpx.Response, *keys: str) -> str:
    """Best-effort human message from an upstream error body."""
    try:
        payload: Any = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)
    return response.text or response.reason_phrase
