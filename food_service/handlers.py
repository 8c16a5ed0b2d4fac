import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from food_service.deps import resolve_locale
from food_service.errors import ServiceError
from food_service.stock_errors import StockError

logger = logging.getLogger(__name__)


def _envelope(message: str, errors=None, **fields) -> dict:
    body = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    body.update(fields)
    return body


async def stock_error_handler(request: Request, exc: StockError):
    info = exc.describe(resolve_locale(request.headers.get("accept-language")))
    logger.info("Stock error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=info.http_status,
        content=_envelope(
            info.user_message,
            errors=[str(exc)],
            type=exc.kind.value,
            foodName=exc.food_name,
            requested=exc.requested,
            available=exc.available,
            severity=info.severity.value,
            suggestions=info.suggestions,
            retryable=info.retryable,
        ),
    )


async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=_envelope(exc.message, code=exc.code))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        # Drop the "body"/"query"/"path" prefix from the location
        location = [str(part) for part in error.get("loc", ())[1:]]
        field = ".".join(location) or "request"
        errors.append(f"{field}: {error.get('msg')}")
    return JSONResponse(status_code=400, content=_envelope("Validation failed", errors=errors))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=_envelope(str(exc.detail)))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_envelope("Internal server error"))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StockError, stock_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
