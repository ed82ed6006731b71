"""Error taxonomy shared by the search services and HTTP routers."""

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from galleria.settings import settings

logger = logging.getLogger(__name__)


class GalleryError(Exception):
    """Base error with a stable kind and an HTTP status."""

    status_code: int = 500
    error: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, *, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": self.error, "message": self.message}
        payload.update(self.context)
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(GalleryError):
    status_code = 400
    error = "validation_error"


class AuthenticationError(GalleryError):
    status_code = 401
    error = "authentication_required"


class AuthorizationError(GalleryError):
    status_code = 403
    error = "forbidden"


class NotFoundError(GalleryError):
    status_code = 404
    error = "not_found"


class UnsupportedOperationError(GalleryError):
    status_code = 501
    error = "unsupported_operation"


class UpstreamError(GalleryError):
    """Embedding provider, ANN matcher or data store failure."""

    status_code = 503
    error = "upstream_error"
    retryable = True


class UpstreamTimeoutError(UpstreamError):
    error = "upstream_timeout"


async def gallery_error_handler(request: Request, exc: GalleryError) -> JSONResponse:
    """Render a GalleryError as JSON.

    The chained cause is only exposed in development.
    """
    if isinstance(exc, UpstreamError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc.__cause__)

    content = exc.to_dict()
    if settings.is_development and exc.__cause__ is not None:
        content["detail"] = f"{type(exc.__cause__).__name__}: {exc.__cause__}"

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
