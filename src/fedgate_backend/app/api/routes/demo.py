# src/fedgate_backend/app/api/routes/demo.py
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fedgate_backend.app.services.users import InMemoryUserRepository

router = APIRouter(prefix="/api", tags=["demo"])

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def get_user_repository(request: Request) -> InMemoryUserRepository:
    return request.app.state.users

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _method_not_allowed(allowed: List[str]) -> JSONResponse:
    return JSONResponse({"error": "Method not allowed", "allowedMethods": allowed}, status_code=405)

async def _body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


@router.api_route("", methods=ALL_METHODS)
async def echo(request: Request):
    """Echo endpoint: reports what it received."""
    method = request.method
    if method not in ("GET", "POST", "PUT", "DELETE"):
        return _method_not_allowed(["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    out: Dict[str, Any] = {
        "message": "Welcome to the gateway API" if method == "GET" else f"{method} request received",
        "method": method,
        "timestamp": _now(),
        "path": str(request.url.path),
    }
    if method in ("GET", "DELETE"):
        out["query"] = dict(request.query_params)
    else:
        out["body"] = await _body(request)
    return out


@router.api_route("/users", methods=ALL_METHODS)
async def users(
    request: Request,
    id: Optional[str] = None,
    repo: InMemoryUserRepository = Depends(get_user_repository),
):
    if request.method == "GET":
        if id:
            user = repo.get(id)
            if user is None:
                return JSONResponse({"error": "User not found"}, status_code=404)
            return user.model_dump()
        found = repo.list()
        return {"users": [u.model_dump() for u in found], "count": len(found)}

    if request.method == "POST":
        body = await _body(request)
        name = body.get("name") if isinstance(body, dict) else None
        email = body.get("email") if isinstance(body, dict) else None
        if not name or not email:
            return JSONResponse({"error": "Name and email are required"}, status_code=400)
        user = repo.create(str(name), str(email))
        return JSONResponse(
            {"message": "User created successfully", "user": user.model_dump()},
            status_code=201,
        )

    return _method_not_allowed(["GET", "POST"])
