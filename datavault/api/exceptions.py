"""Map backup errors to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .._utils import logger
from ..errors import BackupOperationError


async def backup_error_handler(request: Request, exc: BackupOperationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BackupOperationError, backup_error_handler)
