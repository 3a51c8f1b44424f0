"""
api/errors.py -- Render core AuthError failures as the API error envelope.

The core (auth/) decides WHAT failed; this module decides how it looks on the
wire. IntegrityFailure details never reach the client: they are logged with
the traceback and replaced by a generic message.
"""

from __future__ import annotations

import logging

from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import AuthError, IntegrityFailure

logger = logging.getLogger("sessiongate.api")


def error_response(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def auth_error_response(exc: AuthError) -> JSONResponse:
    if isinstance(exc, IntegrityFailure):
        logger.error("Internal failure: %s", exc.message, exc_info=exc)
        return error_response(500, "internal_error", "An unexpected error occurred.")
    return error_response(exc.status_code, exc.code, exc.message, exc.detail or None)
