# src/fedgate_backend/app/api/routes/session.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from fedgate_backend.app.auth.middleware import get_user_by_uid, require_auth, verify_token
from fedgate_backend.app.core.errors import GatewayError, InputError
from fedgate_backend.app.schemas.identity import InternalIdentity

router = APIRouter(prefix="/auth", tags=["session"])


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None

def _record_json(rec: InternalIdentity) -> Dict[str, Any]:
    return {
        "displayName": rec.display_name,
        "email": rec.email,
        "emailVerified": rec.email_verified,
        "phoneNumber": rec.phone_number,
        "photoURL": rec.photo_url,
        "disabled": rec.disabled,
        "metadata": {
            "creationTime": _iso(rec.metadata.creation_time),
            "lastSignInTime": _iso(rec.metadata.last_sign_in_time),
        },
    }


@router.get("/protected")
@require_auth
async def protected(request: Request):
    """Example protected endpoint; identity comes from the verified bearer credential."""
    user = request.state.user
    return JSONResponse({
        "message": "This is a protected endpoint",
        "user": {"uid": request.state.uid, "email": user.email, "name": user.name},
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
    })


@router.get("/user")
@require_auth
async def current_user(request: Request):
    """Full identity record for the authenticated caller."""
    try:
        rec = await get_user_by_uid(request.state.uid)
    except GatewayError as ex:
        return JSONResponse(
            {"error": "Failed to get user information", "message": ex.message or ex.error},
            status_code=ex.status_code,
        )

    body = _record_json(rec)
    body["metadata"]["lastRefreshTime"] = _iso(rec.metadata.last_refresh_time)
    return JSONResponse({
        "success": True,
        "user": {
            "uid": rec.uid,
            **body,
            "customClaims": rec.custom_claims,
            "providerData": [
                {
                    "providerId": p.provider_id,
                    "uid": p.uid,
                    "email": p.email,
                    "displayName": p.display_name,
                    "photoURL": p.photo_url,
                }
                for p in rec.provider_data
            ],
        },
    })


@router.post("/verify")
async def verify(authorization: Optional[str] = Header(None)):
    """Verify a bearer credential and return its claims merged with the stored record."""
    if not authorization:
        raise InputError(
            "Authorization header required",
            "Please provide Authorization header with Bearer token",
        )

    try:
        decoded = await verify_token(authorization)
        rec = await get_user_by_uid(decoded.uid)
    except GatewayError as ex:
        return JSONResponse(
            {"error": "Token verification failed", "message": ex.message or ex.error},
            status_code=401,
        )

    return {
        "success": True,
        "user": {
            "uid": decoded.uid,
            "email": decoded.email,
            "emailVerified": decoded.email_verified,
            "name": decoded.name,
            "picture": decoded.picture,
            "firebase": {
                "identities": decoded.identities,
                "sign_in_provider": decoded.sign_in_provider,
            },
            "customClaims": decoded.claims,
            "userRecord": _record_json(rec),
        },
    }
