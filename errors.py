"""
Error taxonomy for the marketplace API and the handlers that turn it into
``{"success": false, "error": <category>, "message": <text>}`` responses.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    status_code = 500
    category = "StorageFailure"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(MarketplaceError):
    status_code = 404
    category = "NotFound"


class Forbidden(MarketplaceError):
    status_code = 403
    category = "Forbidden"


class DuplicateRequest(MarketplaceError):
    status_code = 409
    category = "DuplicateRequest"


class ValidationError(MarketplaceError):
    status_code = 422
    category = "ValidationError"


class StorageFailure(MarketplaceError):
    pass


HTTP_CATEGORIES = {
    400: "BadRequest",
    401: "Unauthorized",
    403: Forbidden.category,
    404: NotFound.category,
    405: "MethodNotAllowed",
}


def error_response(status_code: int, category: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": category, "message": message},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.category, exc.message)
        return error_response(exc.status_code, exc.category, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return error_response(422, ValidationError.category, "; ".join(parts) or "Invalid request")

    @app.exception_handler(PyMongoError)
    async def storage_error_handler(request: Request, exc: PyMongoError):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return error_response(500, StorageFailure.category, "Storage failure")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        category = HTTP_CATEGORIES.get(exc.status_code, "HTTPError")
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "API endpoint not found"
        else:
            message = str(exc.detail)
        return error_response(exc.status_code, category, message, headers=getattr(exc, "headers", None))
