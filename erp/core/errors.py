from __future__ import annotations

import logging
import re

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ERPError(Exception):
    """Base de los errores de dominio visibles para el cliente."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", type(self).__name__).lower()


class NotFound(ERPError):
    status_code = 404


class Unauthorized(ERPError):
    status_code = 401


class Forbidden(ERPError):
    status_code = 403


class Conflict(ERPError):
    status_code = 409


class InvalidReference(ERPError):
    status_code = 400


class InvalidRequest(ERPError):
    status_code = 400


class InternalError(ERPError):
    status_code = 500


async def _erp_error_handler(request: Request, exc: ERPError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


async def _storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # el mensaje nativo del driver, sin la sentencia SQL
    error = InternalError(str(getattr(exc, "orig", None) or exc))
    logger.error("%s %s storage failure: %s", request.method, request.url.path, error.message)
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.message, "code": error.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ERPError, _erp_error_handler)
    app.add_exception_handler(SQLAlchemyError, _storage_error_handler)
