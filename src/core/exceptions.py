"""
Global Exception Handling

Error taxonomy shared by the provider layer and the HTTP surface, plus
FastAPI handlers that turn exceptions into structured JSON responses.
"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.core.logging import get_logger, request_id_var

logger = get_logger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCode(str, Enum):
    """Codes carried in a failed GenerationResult."""
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    PROVIDER_NOT_AVAILABLE = "PROVIDER_NOT_AVAILABLE"
    MISSING_API_KEY = "MISSING_API_KEY"
    API_ERROR = "API_ERROR"
    NO_IMAGE_RETURNED = "NO_IMAGE_RETURNED"
    NO_OUTPUT = "NO_OUTPUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    PREDICTION_FAILED = "PREDICTION_FAILED"
    PREDICTION_CANCELED = "PREDICTION_CANCELED"
    POLL_ERROR = "POLL_ERROR"
    TIMEOUT = "TIMEOUT"

    # Outpainting
    NO_EXTENSION = "NO_EXTENSION"
    EXTENSION_TOO_LARGE = "EXTENSION_TOO_LARGE"
    INVALID_API_KEY = "INVALID_API_KEY"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    RATE_LIMITED = "RATE_LIMITED"

    # HTTP surface
    INVALID_IMAGE = "INVALID_IMAGE"
    INVALID_REQUEST = "INVALID_REQUEST"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# =============================================================================
# Custom Exceptions
# =============================================================================

class GatewayBaseException(Exception):
    """Base exception for the gateway."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ProviderError(GatewayBaseException):
    """Raised inside a provider handler; converted to a failed result at its boundary."""

    def __init__(self, error_code: ErrorCode, message: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(message, code=502, error_code=error_code, **kwargs)
        if http_status is not None:
            self.details["http_status"] = http_status


class ImageProcessingError(GatewayBaseException):
    """Raised when an image payload or processing parameter is unusable."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_IMAGE, **kwargs):
        super().__init__(message, code=400, error_code=error_code, **kwargs)


def _gateway_error_response(exc: GatewayBaseException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.code,
        content={
            "success": False,
            "error": {"code": exc.error_code.value, "message": exc.message},
            "details": exc.details,
            "request_id": request_id_var.get(),
            "timestamp": _utc_timestamp()
        }
    )


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(GatewayBaseException)
    async def gateway_exception_handler(request: Request, exc: GatewayBaseException):
        logger.warning(
            "gateway_exception",
            error=exc.message,
            code=exc.code,
            error_code=exc.error_code.value,
            path=str(request.url.path)
        )
        return _gateway_error_response(exc)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": {"code": ErrorCode.INTERNAL_ERROR.value, "message": "Internal server error"},
                "request_id": request_id_var.get(),
                "timestamp": _utc_timestamp()
            }
        )
