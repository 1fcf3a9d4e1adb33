# discovery/core/errors.py
from __future__ import annotations
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Base class for every error the discovery engine raises on purpose."""

    kind = "discovery_error"
    status_code = 500
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DiscoveryError):
    """Product/user/identity does not resolve. No mutation was applied."""

    kind = "not_found"
    status_code = 404


class InvalidInput(DiscoveryError):
    kind = "invalid_input"
    status_code = 400


class Unauthenticated(InvalidInput):
    kind = "unauthenticated"
    status_code = 401


class UpstreamUnavailable(DiscoveryError):
    """Search index or primary store failed or timed out."""

    kind = "upstream_unavailable"
    status_code = 503
    retryable = True


class ConsistencyConflict(DiscoveryError):
    """A mutation could not complete as one unit. Nothing was committed; retry the action."""

    kind = "consistency_conflict"
    status_code = 409
    retryable = True


async def _discovery_error_handler(request: Request, exc: DiscoveryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.detail)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.kind, "retryable": exc.retryable},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DiscoveryError, _discovery_error_handler)
