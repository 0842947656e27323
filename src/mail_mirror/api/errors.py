"""Map domain errors onto HTTP responses.

Sync failures are reported as retryable so the client re-triggers the pass;
the cursor has not moved when any of these are raised.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mail_mirror.exceptions import (
    AuthenticationError,
    BootstrapRequiredError,
    ConfigurationError,
    CursorRegressionError,
    GmailAPIError,
    MailMirrorError,
    RelayError,
    SpreadsheetError,
    StoreWriteError,
    TransientProviderError,
    UnknownWatermarkError,
)

logger = structlog.get_logger()

_STATUS: dict[type[MailMirrorError], int] = {
    MailMirrorError: 500,
    ConfigurationError: 500,
    AuthenticationError: 500,
    StoreWriteError: 500,
    CursorRegressionError: 409,
    BootstrapRequiredError: 409,
    GmailAPIError: 502,
    TransientProviderError: 503,
    UnknownWatermarkError: 404,
    SpreadsheetError: 400,
    RelayError: 502,
}


async def _handle(request: Request, exc: MailMirrorError) -> JSONResponse:
    status = 500
    for cls in type(exc).__mro__:
        if cls in _STATUS:
            status = _STATUS[cls]
            break

    logger.warning(
        "request_failed",
        path=request.url.path,
        status=status,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status,
        content={"error": str(exc), "type": type(exc).__name__, "retryable": exc.retryable},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MailMirrorError, _handle)
