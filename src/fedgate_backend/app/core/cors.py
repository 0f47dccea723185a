# src/fedgate_backend/app/core/cors.py
from __future__ import annotations

from typing import Awaitable, Callable, Dict

from fastapi import Request, Response

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version, Authorization"
    ),
}

def apply_cors_headers(response: Response) -> Response:
    for k, v in CORS_HEADERS.items():
        response.headers[k] = v
    return response

def preflight_response() -> Response:
    return apply_cors_headers(Response(status_code=200))

async def permissive_cors(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """
    HTTP middleware: answer every OPTIONS before routing, stamp CORS headers on the rest.
    Register with app.middleware("http")(permissive_cors).
    """
    if request.method == "OPTIONS":
        return preflight_response()
    response = await call_next(request)
    return apply_cors_headers(response)
