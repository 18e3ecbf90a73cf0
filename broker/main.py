"""
FastAPI application entrypoint for the SmartThings auth broker.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from broker.api.routes import router as api_router
from broker.core.config import get_settings
from broker.core.errors import BrokerError, CryptoError, RateLimitError, StorageError
from broker.core.logging import configure_logging

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET, POST, OPTIONS",
    "access-control-allow-headers": "content-type, authorization",
    "access-control-max-age": "86400",
}


async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    """Translate broker errors into ``{"error": ...}`` JSON bodies."""
    headers = {}
    if isinstance(exc, RateLimitError):
        headers["retry-after"] = str(exc.retry_after)
    if isinstance(exc, (CryptoError, StorageError)):
        logger.error(
            "Stored record unusable on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
    elif exc.status_code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_public_message()},
        headers=headers,
    )


async def cors_and_cache_headers(request: Request, call_next) -> Response:
    """Answer preflights directly and mark every response as non-cacheable."""
    if request.method == "OPTIONS":
        response = Response(status_code=204)
    else:
        response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    if "cache-control" not in response.headers:
        response.headers["cache-control"] = "no-store"
    return response


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="SmartThings Auth Broker",
        version="0.1.0",
        description="Pairs clients with SmartThings OAuth without exposing tokens.",
    )
    app.include_router(api_router)
    app.add_exception_handler(BrokerError, broker_error_handler)
    app.middleware("http")(cors_and_cache_headers)
    return app


app = create_app()

__all__ = ["app", "create_app"]
