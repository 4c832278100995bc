"""Success and failure envelopes returned by every endpoint."""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backoffice.core.config import settings
from backoffice.core.errors import ActionError, ErrorKind, HTTP_STATUS
from backoffice.core.messages import normalize_locale, render_message
from backoffice.services.result import ActionResult

logger = logging.getLogger(__name__)


def ok(data: Any = None, warning: Any = None, locale: str = "th") -> dict:
    """Wrap a service result; an ActionResult carries its own warning."""
    if isinstance(data, ActionResult):
        return {"success": True, "data": data.data, "warning": data.render_warning(locale)}
    return {"success": True, "data": data, "warning": warning}


def _request_locale(request: Request) -> str:
    return normalize_locale(request.headers.get("accept-language"), settings.DEFAULT_LOCALE)


def error_response(kind: ErrorKind, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=HTTP_STATUS[kind],
        content={"success": False, "error": message, "error_kind": kind.value},
    )


async def action_error_handler(request: Request, exc: ActionError) -> JSONResponse:
    if exc.kind == ErrorKind.BACKEND:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return error_response(exc.kind, exc.message(_request_locale(request)))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    logger.info(f"{request.method} {request.url.path} invalid request: {details}")
    return error_response(
        ErrorKind.VALIDATION,
        render_message("common.invalid_request", _request_locale(request), detail=details),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(ErrorKind.BACKEND, render_message("common.unexpected", _request_locale(request)))
