"""Domain errors and their HTTP mapping.

Services raise subclasses of :class:`ZhanwenError`; the API layer installs
:func:`register_exception_handlers` so each one becomes a JSON error body:

    {
        "error": true,
        "code": "ALL_MODELS_FAILED",
        "message": "AI service is temporarily unavailable",
        "detail": {"errors": [...]},
        "timestamp": "2026-01-01T10:30:00+00:00"
    }
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: bool = True
    code: str
    message: str
    detail: Optional[Any] = None
    timestamp: str


class ZhanwenError(Exception):
    """Base class for every error the service reports to callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class CryptoError(ZhanwenError):
    """A vault operation failed (missing key, malformed or empty ciphertext)."""

    code = "CRYPTO_ERROR"


# Registry validation


class InvalidModelPayload(ZhanwenError):
    code = "INVALID_MODEL_PAYLOAD"
    status_code = 400


class ModelNotFound(ZhanwenError):
    code = "MODEL_NOT_FOUND"
    status_code = 404


class ProviderNotFound(ZhanwenError):
    code = "PROVIDER_NOT_FOUND"
    status_code = 404


class DuplicateModelName(ZhanwenError):
    code = "MODEL_NAME_EXISTS"
    status_code = 409


class CannotDeletePrimary(ZhanwenError):
    code = "CANNOT_DELETE_PRIMARY"
    status_code = 400


class PromotionConflict(ZhanwenError):
    """The database rejected a promotion that raced another one."""

    code = "PROMOTION_CONFLICT"
    status_code = 409


class PromptTemplateNotFound(ZhanwenError):
    code = "PROMPT_TEMPLATE_NOT_FOUND"
    status_code = 404


# Dispatch


class NoActiveModel(ZhanwenError):
    code = "NO_ACTIVE_AI_MODEL"
    status_code = 503


class AllModelsFailed(ZhanwenError):
    """Every dispatch candidate failed; ``errors`` keeps them in attempt order."""

    code = "ALL_MODELS_FAILED"
    status_code = 503

    def __init__(self, errors: List[Dict[str, Any]], elapsed_ms: Optional[int] = None):
        super().__init__(
            "AI service is temporarily unavailable", detail={"errors": errors}
        )
        self.errors = errors
        self.elapsed_ms = elapsed_ms


class DiscoveryError(ZhanwenError):
    code = "MODEL_DISCOVERY_FAILED"
    status_code = 502


async def zhanwen_error_handler(request: Request, exc: ZhanwenError) -> JSONResponse:
    """Render a domain error as the standard error body."""
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            code=exc.code,
            message=exc.message,
        )
    body = ErrorResponse(
        code=exc.code,
        message=exc.message,
        detail=exc.detail,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain error handler on a FastAPI app."""
    app.add_exception_handler(ZhanwenError, zhanwen_error_handler)
