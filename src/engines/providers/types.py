from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.core.exceptions import ErrorCode


class ProviderId(str, Enum):
    OPENAI = "openai"
    STABILITY = "stability"
    REPLICATE = "replicate"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: str) -> Optional["ProviderId"]:
        """Resolve a raw provider string, None when it is not a known id."""
        try:
            return cls(value)
        except ValueError:
            return None


class Quality(str, Enum):
    DRAFT = "draft"
    STANDARD = "standard"
    HD = "hd"


class Style(str, Enum):
    NATURAL = "natural"
    VIVID = "vivid"


@dataclass(frozen=True)
class ProviderConfig:
    """Static description of one upstream provider."""
    id: ProviderId
    name: str
    available: bool
    env_key_name: str
    default_model: Optional[str] = None
    supported_sizes: Tuple[str, ...] = field(default_factory=tuple)


PROVIDER_CONFIGS: Dict[ProviderId, ProviderConfig] = {
    ProviderId.OPENAI: ProviderConfig(
        id=ProviderId.OPENAI,
        name="OpenAI GPT Image",
        available=True,
        env_key_name="OPENAI_API_KEY",
        default_model="gpt-image-1",
        supported_sizes=("1024x1024", "1536x1024", "1024x1536"),
    ),
    ProviderId.STABILITY: ProviderConfig(
        id=ProviderId.STABILITY,
        name="Stability AI",
        available=True,
        env_key_name="STABILITY_API_KEY",
        default_model="stable-diffusion-xl-1024-v1-0",
        supported_sizes=(
            "1024x1024", "1152x896", "1216x832", "1344x768", "1536x640",
            "896x1152", "832x1216", "768x1344", "640x1536",
        ),
    ),
    ProviderId.REPLICATE: ProviderConfig(
        id=ProviderId.REPLICATE,
        name="Replicate (Flux)",
        available=True,
        env_key_name="REPLICATE_API_KEY",
        default_model="black-forest-labs/flux-schnell",
        supported_sizes=(
            "1024x1024", "1344x768", "1216x832", "1152x896",
            "896x1152", "832x1216", "768x1344",
        ),
    ),
    ProviderId.ANTHROPIC: ProviderConfig(
        id=ProviderId.ANTHROPIC,
        name="Anthropic Claude",
        available=False,
        env_key_name="ANTHROPIC_API_KEY",
    ),
}


class GenerationRequest(BaseModel):
    """A caller's request for one generated image."""
    model_config = ConfigDict(populate_by_name=True)

    # Kept as a raw string so unknown ids reach the dispatcher as PROVIDER_NOT_FOUND
    provider: str
    prompt: str = Field("", max_length=4000)
    negative_prompt: Optional[str] = Field(None, alias="negativePrompt")
    width: int = Field(1024, gt=0)
    height: int = Field(1024, gt=0)
    quality: Optional[Quality] = None
    style: Optional[Style] = None
    api_key: Optional[str] = Field(None, alias="apiKey", repr=False)
    count: int = Field(1, ge=1, le=10)
    # Image-to-image source (data URI, base64 or URL); only Stability AI uses it
    init_image: Optional[str] = Field(None, alias="initImage", repr=False)
    # 0-1, how far to move away from init_image
    strength: Optional[float] = Field(None, ge=0, le=1)


class ErrorInfo(BaseModel):
    code: ErrorCode
    message: str


class GenerationResult(BaseModel):
    """Normalized outcome of a generation call.

    On success exactly one of image_url / image_base64 is set. On failure
    only error is set.
    """
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    image_url: Optional[str] = Field(None, alias="imageUrl")
    image_base64: Optional[str] = Field(None, alias="imageBase64")
    error: Optional[ErrorInfo] = None
    provider: str
    model: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "GenerationResult":
        has_url = self.image_url is not None
        has_b64 = self.image_base64 is not None
        if self.success:
            if has_url == has_b64:
                raise ValueError("successful result needs exactly one of image_url or image_base64")
            if self.error is not None:
                raise ValueError("successful result cannot carry an error")
        else:
            if self.error is None:
                raise ValueError("failed result needs an error")
            if has_url or has_b64:
                raise ValueError("failed result cannot carry image data")
        return self

    @classmethod
    def from_url(cls, provider: str, url: str, model: Optional[str] = None) -> "GenerationResult":
        return cls(success=True, image_url=url, provider=provider, model=model)

    @classmethod
    def from_base64(cls, provider: str, data_uri: str, model: Optional[str] = None) -> "GenerationResult":
        return cls(success=True, image_base64=data_uri, provider=provider, model=model)

    @classmethod
    def failure(cls, provider: str, code: ErrorCode, message: str) -> "GenerationResult":
        return cls(success=False, error=ErrorInfo(code=code, message=message), provider=provider)

    @property
    def error_code(self) -> Optional[ErrorCode]:
        return self.error.code if self.error else None


def supported_sizes(provider: str) -> List[str]:
    parsed = ProviderId.parse(provider)
    if parsed is None:
        return []
    return list(PROVIDER_CONFIGS[parsed].supported_sizes)
