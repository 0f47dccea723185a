# src/fedgate_backend/app/core/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class GatewayError(Exception):
    """
    Base of the gateway error taxonomy.

    `error` is the short label returned to clients, `message` the optional
    detail (usually the underlying cause text).
    """
    status_code: int = 500
    default_error: str = "Internal error"

    def __init__(
        self,
        error: Optional[str] = None,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
    ) -> None:
        self.error = error or self.default_error
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message or self.error)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        return body


class ConfigurationError(GatewayError):
    """Missing or invalid credentials/configuration."""
    status_code = 500
    default_error = "Server misconfigured"


class InputError(GatewayError):
    """A required request field is missing."""
    status_code = 400
    default_error = "Invalid request"


class ProtocolError(GatewayError):
    """The external provider answered with something unusable."""
    status_code = 400
    default_error = "Malformed provider response"


class UpstreamError(GatewayError):
    """A network or provider/backend call failed."""
    status_code = 500
    default_error = "Upstream call failed"


class AuthenticationError(GatewayError):
    status_code = 401
    default_error = "Unauthorized"


class NotFoundError(GatewayError):
    status_code = 404
    default_error = "Not found"


# ------------------------
# FastAPI wiring
# ------------------------
async def gateway_error_handler(_: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(exc.to_body(), status_code=exc.status_code)

async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    # keep framework 404/405 in the same {error} shape as everything else
    body: Dict[str, Any] = {"error": exc.detail if isinstance(exc.detail, str) else "HTTP error"}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))

def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
