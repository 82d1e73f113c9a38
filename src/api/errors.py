"""Translation of core exceptions into HTTP responses."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.core.exceptions import (
    BrokerUnavailableError,
    CoachingError,
    ConflictError,
    GenerationFailedError,
    InvalidRequestError,
    NotFoundError,
    PreconditionError,
    SessionLimitExceededError,
    SignalingExchangeError,
)
from src.logging_config import get_logger

logger: Any = get_logger(__name__)

# Checked in order; subclasses before their bases
_STATUS_BY_ERROR: list[tuple[type[CoachingError], int]] = [
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SessionLimitExceededError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PreconditionError, status.HTTP_400_BAD_REQUEST),
    (BrokerUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SignalingExchangeError, status.HTTP_502_BAD_GATEWAY),
    (GenerationFailedError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: CoachingError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def coaching_error_handler(request: Request, exc: CoachingError) -> JSONResponse:
    status_code = status_for(exc)
    body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, BrokerUnavailableError) and exc.session_id:
        body["sessionId"] = exc.session_id

    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.code}")
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoachingError, coaching_error_handler)  # type: ignore[arg-type]
