"""
Provider dispatch.

Dispatcher.generate() is total: every call ends in a GenerationResult,
whatever the provider id, credentials or upstream behaviour.
"""

from typing import Dict, List, Mapping, Optional

import httpx

from src.core.config import Settings
from src.core.exceptions import ErrorCode
from src.core.logging import get_logger
from src.engines.providers.base import ProviderHandler
from src.engines.providers.openai import OpenAIProvider
from src.engines.providers.replicate import ReplicateProvider
from src.engines.providers.stability import StabilityProvider
from src.engines.providers.types import (
    PROVIDER_CONFIGS,
    GenerationRequest,
    GenerationResult,
    ProviderConfig,
    ProviderId,
)

logger = get_logger(__name__)


def build_handlers(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[ProviderId, ProviderHandler]:
    return {
        ProviderId.OPENAI: OpenAIProvider(
            settings.OPENAI_API_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        ),
        ProviderId.STABILITY: StabilityProvider(
            settings.STABILITY_API_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
            outpaint_timeout=settings.OUTPAINT_TIMEOUT_SECONDS,
            remove_background_timeout=settings.REMOVE_BACKGROUND_TIMEOUT_SECONDS,
        ),
        ProviderId.REPLICATE: ReplicateProvider(
            settings.REPLICATE_API_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
            poll_timeout_ms=settings.REPLICATE_POLL_TIMEOUT_MS,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
        ),
    }


class Dispatcher:
    """Routes generation requests to provider handlers.

    Credentials come from the injected mapping (keyed by each provider's
    env_key_name); a key on the request takes precedence over it.
    """

    def __init__(
        self,
        handlers: Mapping[ProviderId, ProviderHandler],
        credentials: Optional[Mapping[str, str]] = None,
        configs: Optional[Mapping[ProviderId, ProviderConfig]] = None,
    ):
        self.configs = dict(configs or PROVIDER_CONFIGS)
        self.handlers = dict(handlers)
        self.credentials = dict(credentials or {})

        missing = [
            pid.value for pid, config in self.configs.items()
            if config.available and pid not in self.handlers
        ]
        if missing:
            raise ValueError(f"No handler registered for available providers: {', '.join(missing)}")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Dispatcher":
        return cls(build_handlers(settings, transport), credentials=settings.provider_credentials())

    def resolve_credential(self, config: ProviderConfig, override: Optional[str] = None) -> Optional[str]:
        return override or self.credentials.get(config.env_key_name) or None

    def handler_for(self, provider: ProviderId) -> ProviderHandler:
        return self.handlers[provider]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        provider_id = ProviderId.parse(request.provider)
        if provider_id is None or provider_id not in self.configs:
            logger.warning("provider_not_found", provider=request.provider)
            return GenerationResult.failure(
                request.provider,
                ErrorCode.PROVIDER_NOT_FOUND,
                f"Provider '{request.provider}' is not implemented",
            )

        config = self.configs[provider_id]
        if not config.available:
            return GenerationResult.failure(
                provider_id.value,
                ErrorCode.PROVIDER_NOT_AVAILABLE,
                f"Provider '{provider_id.value}' is not yet available",
            )

        api_key = self.resolve_credential(config, request.api_key)
        if not api_key:
            return GenerationResult.failure(
                provider_id.value,
                ErrorCode.MISSING_API_KEY,
                f"API key for {config.name} is not configured. Set {config.env_key_name}.",
            )

        try:
            return await self.handlers[provider_id].generate(request, api_key)
        except Exception as e:
            # Handlers convert their own failures; this only catches contract breaches
            logger.error("dispatch_crashed", provider=provider_id.value, error=str(e))
            return GenerationResult.failure(
                provider_id.value,
                ErrorCode.GENERATION_FAILED,
                f"{config.name} generation failed: {e}",
            )

    async def validate_credential(self, provider: str, api_key: str) -> bool:
        provider_id = ProviderId.parse(provider)
        if provider_id is None or not self.configs.get(provider_id) or not self.configs[provider_id].available:
            return False
        try:
            return await self.handlers[provider_id].validate_credential(api_key)
        except Exception as e:
            logger.warning("credential_check_crashed", provider=provider, error=str(e))
            return False

    def available_providers(self) -> List[ProviderId]:
        """Providers that are enabled and have a configured credential."""
        return [
            pid for pid, config in self.configs.items()
            if config.available and self.resolve_credential(config)
        ]
