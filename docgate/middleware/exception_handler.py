"""Exception handler middleware for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import DatabaseError, DocgateException

logger = logging.getLogger(__name__)


async def docgate_exception_handler(request: Request, exc: DocgateException) -> JSONResponse:
    """
    Handle custom exceptions and return structured JSON responses.

    Server-side failures are logged at ERROR, caller errors (4xx) at
    WARNING. A DatabaseError's driver message goes to the log only.

    Args:
        request: FastAPI request object
        exc: DocgateException instance

    Returns:
        JSONResponse with error details
    """
    extra = {
        "error_code": exc.error_code.value,
        "path": request.url.path,
        "method": request.method,
        "details": exc.details,
        "status_code": exc.status_code,
    }
    if exc.status_code >= 500:
        if isinstance(exc, DatabaseError) and exc.original_error is not None:
            extra["original_error"] = str(exc.original_error)
        logger.error(f"DocgateException: {exc.error_code.value}", extra=extra)
    else:
        logger.warning(f"DocgateException: {exc.error_code.value}", extra=extra)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
