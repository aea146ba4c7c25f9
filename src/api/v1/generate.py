"""
Generation Endpoints

POST /api/v1/generate      - Generate one image through a provider
GET  /api/v1/providers     - Provider table with availability
POST /api/v1/validate-key  - Check a provider credential
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from src.api.dependencies import get_dispatcher
from src.core.logging import LogContext, get_logger
from src.engines.providers.dispatcher import Dispatcher
from src.engines.providers.types import PROVIDER_CONFIGS, GenerationRequest, GenerationResult, ProviderId

logger = get_logger(__name__)
router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ProviderInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    available: bool
    configured: bool
    default_model: Optional[str] = Field(None, alias="defaultModel")
    supported_sizes: List[str] = Field(default_factory=list, alias="supportedSizes")


class ValidateKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str
    api_key: str = Field(..., alias="apiKey", min_length=1)


class ValidateKeyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    valid: bool
    provider: str
    provider_name: str = Field(..., alias="providerName")


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/generate", response_model=GenerationResult, response_model_exclude_none=True)
async def generate(
    request: GenerationRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Generate an image with the requested provider.

    Always answers 200 with a GenerationResult; failures are reported in
    its error field rather than through the HTTP status.
    """
    with LogContext(request_id=str(uuid.uuid4()), provider=request.provider):
        logger.info(
            "generate_request_received",
            prompt_length=len(request.prompt),
            width=request.width,
            height=request.height,
            user_key=bool(request.api_key),
        )
        return await dispatcher.generate(request)


@router.get("/providers", response_model=List[ProviderInfo])
async def list_providers(dispatcher: Dispatcher = Depends(get_dispatcher)):
    configured = set(dispatcher.available_providers())
    return [
        ProviderInfo(
            id=config.id.value,
            name=config.name,
            available=config.available,
            configured=config.id in configured,
            default_model=config.default_model,
            supported_sizes=list(config.supported_sizes),
        )
        for config in PROVIDER_CONFIGS.values()
    ]


@router.post("/validate-key", response_model=ValidateKeyResponse)
async def validate_key(
    request: ValidateKeyRequest,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    provider_id = ProviderId.parse(request.provider)
    if provider_id is None:
        raise HTTPException(status_code=400, detail="Invalid provider")

    valid = await dispatcher.validate_credential(provider_id.value, request.api_key)
    logger.info("credential_checked", provider=provider_id.value, valid=valid)
    return ValidateKeyResponse(
        valid=valid,
        provider=provider_id.value,
        provider_name=PROVIDER_CONFIGS[provider_id].name,
    )
