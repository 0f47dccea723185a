# src/fedgate_backend/app/auth/google.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from fedgate_backend.app.auth.provider import PROVIDER, GoogleOAuthClient
from fedgate_backend.app.auth.redirects import delivery_url
from fedgate_backend.app.core.config import Settings, get_settings
from fedgate_backend.app.core.errors import GatewayError, InputError, ProtocolError, UpstreamError
from fedgate_backend.app.core.trace import auth_trace
from fedgate_backend.app.schemas.identity import ExternalIdentity
from fedgate_backend.app.services.identity import resolve_identity
from fedgate_backend.app.services.identity_backend import get_identity_backend

router = APIRouter(tags=["auth"])

CALLBACK_PATH = "/auth/google/callback"


def _base_url(request: Request) -> str:
    proto = (request.headers.get("x-forwarded-proto") or request.url.scheme).split(",")[0].strip()
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"

def _client(request: Request, settings: Settings) -> GoogleOAuthClient:
    redirect_uri = settings.google_redirect_uri or f"{_base_url(request)}{CALLBACK_PATH}"
    return GoogleOAuthClient(settings, redirect_uri)


# ------------------------
# /auth/google (start)
# ------------------------
@router.get("/auth/google")
async def google_authorize(request: Request, state: Optional[str] = None):
    """Redirect the browser to Google's consent screen. `state` is passed through untouched."""
    client = _client(request, get_settings())
    url = client.authorization_url(state)
    auth_trace("oauth.authorize", redirect=client.redirect_uri, state_set=bool(state))
    return RedirectResponse(url, status_code=302)


# ------------------------
# /auth/google/callback (end)
# ------------------------
@router.get(CALLBACK_PATH)
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    redirect: Optional[str] = None,
    state: Optional[str] = None,
):
    """
    code -> provider tokens -> verified ID token -> internal identity (get-or-create)
    -> session credential -> redirect (or JSON when there is no safe target).

    Any failure before delivery answers with JSON, never with a redirect.
    """
    settings = get_settings()
    client = _client(request, settings)

    if not code:
        raise InputError("Missing ?code from Google callback")

    tokens = await client.exchange_code(code)
    id_token = tokens.get("id_token")
    if not id_token or not isinstance(id_token, str):
        raise ProtocolError("No id_token received from Google")

    claims = await client.verify_id_token(id_token)
    if not claims.get("sub") or not claims.get("email"):
        raise ProtocolError("Google token payload missing sub/email")
    external = ExternalIdentity.from_claims(claims)
    auth_trace("oauth.callback.verified", sub=external.subject)

    try:
        backend = get_identity_backend()
        identity = await resolve_identity(backend, PROVIDER, external)
        credential = await backend.mint_session_credential(
            identity.uid, {"provider": PROVIDER, "email": external.email}
        )
    except GatewayError:
        raise
    except Exception as ex:  # still JSON, never a redirect
        raise UpstreamError("Google OAuth callback failed", str(ex) or type(ex).__name__)

    target = delivery_url(redirect, settings.frontend_redirect_url, credential, state)
    auth_trace("oauth.callback.minted", uid=identity.uid, delivery="redirect" if target else "json")
    if target:
        return RedirectResponse(target, status_code=302)

    return JSONResponse({
        "success": True,
        "uid": identity.uid,
        "email": identity.email,
        "sessionCredential": credential,
    })
