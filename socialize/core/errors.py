from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from socialize.utils.logger import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an error envelope."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Validation error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls("Validation error", errors={field: [message]})


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Resource already exists"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthenticated"


class InvalidTransitionError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Invalid status transition"


class LeaseConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Upload is already being published"


class StorageError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage operation failed"


def error_envelope(message: str, status_code: int, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, "data": jsonable_encoder(data)},
    )


def _field_errors(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Turn pydantic error entries into a {field: [messages]} map."""
    fields: Dict[str, List[str]] = {}
    for err in errors:
        # drop the "body"/"query"/"path" location prefix
        loc = [str(part) for part in err.get("loc", ())[1:]] or ["__root__"]
        fields.setdefault(".".join(loc), []).append(err.get("msg", "Invalid value"))
    return fields


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_envelope(exc.message, exc.status_code, exc.errors)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_envelope("Validation error", status.HTTP_422_UNPROCESSABLE_ENTITY, _field_errors(exc.errors()))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    response = error_envelope(str(exc.detail), exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
