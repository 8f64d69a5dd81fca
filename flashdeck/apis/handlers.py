from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from flashdeck.core.errors import ApiError, ApiErrorResponse, ErrorCode
from flashdeck.core.logging import get_logger

logger = get_logger(__name__)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    descriptor = exc.descriptor
    if descriptor.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=descriptor.status,
        content=descriptor.body.model_dump(mode="json", exclude_none=True),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    in_query = bool(errors) and all(e.get("loc", ("",))[0] in ("query", "path") for e in errors)
    code = ErrorCode.INVALID_QUERY if in_query else ErrorCode.INVALID_BODY
    message = "Invalid query parameters" if in_query else "Invalid request body"
    body = ApiErrorResponse.of(code, message, jsonable_encoder(errors))
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
