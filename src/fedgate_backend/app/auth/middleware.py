# src/fedgate_backend/app/auth/middleware.py
from __future__ import annotations

from functools import wraps
from typing import Awaitable, Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from fedgate_backend.app.core.cors import preflight_response
from fedgate_backend.app.core.errors import (
    AuthenticationError,
    ConfigurationError,
    GatewayError,
    NotFoundError,
    UpstreamError,
)
from fedgate_backend.app.core.trace import auth_trace
from fedgate_backend.app.schemas.identity import DecodedBearer, InternalIdentity
from fedgate_backend.app.services.identity_backend import (
    TokenExpiredError,
    TokenMalformedError,
    get_identity_backend,
)

Handler = Callable[[Request], Awaitable[Response]]


def _bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError(message="Authorization header missing or invalid format")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthenticationError(message="Token not provided")
    return token


async def verify_token(authorization: Optional[str]) -> DecodedBearer:
    """
    Verify a backend-issued bearer credential from an Authorization header value.
    Every failure comes back as AuthenticationError with a cause-specific message.
    """
    token = _bearer(authorization)
    try:
        backend = get_identity_backend()
        return await backend.verify_bearer_token(token)
    except TokenExpiredError:
        raise AuthenticationError(message="Token has expired")
    except TokenMalformedError:
        raise AuthenticationError(message="Invalid token format")
    except ConfigurationError as ex:
        raise AuthenticationError(message=f"Identity backend is not configured: {ex.message or ex.error}")
    except GatewayError as ex:
        raise AuthenticationError(message=f"Token verification failed: {ex.message or ex.error}")


async def get_user_by_uid(uid: str) -> InternalIdentity:
    """Fetch the full identity record. Failures read "Failed to get user: <cause>"."""
    try:
        return await get_identity_backend().get_identity(uid)
    except NotFoundError as ex:
        raise NotFoundError("Failed to get user", f"Failed to get user: {ex.message or ex.error}")
    except GatewayError as ex:
        raise UpstreamError("Failed to get user", f"Failed to get user: {ex.message or ex.error}")


def unauthorized(message: str) -> JSONResponse:
    resp = JSONResponse({"error": "Unauthorized", "message": message}, status_code=401)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    return resp


def require_auth(handler: Handler) -> Handler:
    """
    Protect an async `handler(request)`.

    OPTIONS is answered directly. Otherwise the bearer credential must verify;
    the decoded claims land on request.state.user / request.state.uid before the
    handler runs. On failure the handler is never called and the caller gets 401.
    """
    @wraps(handler)
    async def _protected(request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()

        try:
            user = await verify_token(request.headers.get("authorization"))
        except AuthenticationError as ex:
            auth_trace("session.verify.denied", path=request.url.path, reason=ex.message)
            return unauthorized(ex.message or ex.error)

        request.state.user = user
        request.state.uid = user.uid
        auth_trace("session.verify.ok", path=request.url.path, uid=user.uid)
        return await handler(request)

    return _protected
