"""FastAPI glue shared by every context's router."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError as CommandValidationError
from pydantic import ValidationError as SchemaValidationError

from shared.exceptions import DomainError, ShopfrontError, ValidationError

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain errors into JSON responses.

    Malformed request bodies keep FastAPI's own 422 handler; commands that
    fail their own field validation inside a route are reported as 400s.
    """

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
        logger.info(
            "Request rejected",
            path=request.url.path,
            error=exc.code,
            message=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(SchemaValidationError)
    async def handle_schema_error(request: Request, exc: SchemaValidationError) -> JSONResponse:
        messages: dict[str, list[str]] = {}
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "_entity"
            messages.setdefault(field, []).append(error["msg"])
        return await handle_domain_error(request, ValidationError(messages))

    @app.exception_handler(CommandValidationError)
    async def handle_command_error(request: Request, exc: CommandValidationError) -> JSONResponse:
        messages = exc.messages
        if not isinstance(messages, dict):
            messages = {"_entity": [str(messages)]}
        return await handle_domain_error(request, ValidationError(messages))

    @app.exception_handler(ShopfrontError)
    async def handle_shopfront_error(request: Request, exc: ShopfrontError) -> JSONResponse:
        logger.exception("Internal failure", path=request.url.path, exc_info=exc)
        return _internal_error()

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", path=request.url.path, exc_info=exc)
        return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "InternalError",
            "message": "Something went wrong",
            "errors": {},
        },
    )
