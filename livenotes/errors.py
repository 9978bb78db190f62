from __future__ import annotations

from enum import Enum
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorKind(str, Enum):
    CONFIG = "config"
    NETWORK = "network"
    PARSE = "parse"
    INVARIANT = "invariant"


class SynthesisError(Exception):
    """Failure of one synthesis step, tagged with where and why it happened.

    ``stage`` is one of precheck|resolve|clean|merge|repair|persist. The queue
    reports these per kind instead of sniffing message strings.
    """

    kind: ErrorKind = ErrorKind.INVARIANT

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        provider: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.provider = provider
        if kind is not None:
            self.kind = kind

    def user_message(self) -> str:
        who = self.provider or "AI"
        if self.stage:
            return f"{who} notes update failed ({self.stage}): {self.message}"
        return f"{who} notes update failed: {self.message}"


class ConfigError(SynthesisError):
    kind = ErrorKind.CONFIG


class ProviderError(SynthesisError):
    kind = ErrorKind.NETWORK

    def __init__(self, message: str, *, status: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status = status


class ModelNotFoundError(ProviderError):
    pass


class NotesParseError(SynthesisError):
    kind = ErrorKind.PARSE


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException):  # type: ignore[unused-variable]
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).model_dump(),
        )

    @app.exception_handler(SynthesisError)
    async def _handle_synthesis_error(request: Request, exc: SynthesisError):  # type: ignore[unused-variable]
        status = 400 if exc.kind == ErrorKind.CONFIG else 502
        return JSONResponse(status_code=status, content=ErrorResponse(error=exc.user_message()).model_dump())

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):  # type: ignore[unused-variable]
        return JSONResponse(status_code=500, content=ErrorResponse(error="internal error").model_dump())
