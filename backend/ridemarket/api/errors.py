"""
Maps domain exceptions to HTTP responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ridemarket.core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from ridemarket.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, 422),
)


def status_for(exc: DomainError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "domain_error",
        error_type=type(exc).__name__,
        detail=exc.message,
        status_code=status_code,
    )
    content = {"detail": exc.message}
    if exc.context:
        content["context"] = jsonable_encoder(exc.context)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
