"""
Image Provider Layer

Normalizes three upstream completion models behind one async contract:
1. OpenAI - immediate, inline base64
2. Stability AI - immediate, base64 artifact or URL
3. Replicate - job creation followed by status polling
"""

from src.engines.providers.dispatcher import Dispatcher, build_handlers
from src.engines.providers.types import (
    PROVIDER_CONFIGS,
    GenerationRequest,
    GenerationResult,
    ProviderConfig,
    ProviderId,
)

__all__ = [
    "Dispatcher",
    "build_handlers",
    "PROVIDER_CONFIGS",
    "GenerationRequest",
    "GenerationResult",
    "ProviderConfig",
    "ProviderId",
]
