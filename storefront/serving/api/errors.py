"""
API Error Handlers

Renders storefront errors as {"error": <code>, "detail": <message>} with the
status code of the error class.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.errors import StorefrontError, TransientStoreError

logger = structlog.get_logger(__name__)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    log = logger.error if isinstance(exc, TransientStoreError) else logger.info
    log(
        "Request rejected",
        path=request.url.path,
        error=exc.code,
        status_code=exc.status_code,
        message=exc.message,
    )
    content = {"error": exc.code, "detail": exc.message}
    if exc.detail:
        content["context"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
