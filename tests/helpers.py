# tests/helpers.py
"""Constants, token builders and the in-memory backend fake shared by the test suite."""
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import jwt

from fedgate_backend.app.core.errors import NotFoundError
from fedgate_backend.app.schemas.identity import DecodedBearer, InternalIdentity, NewIdentity
from fedgate_backend.app.services.identity_backend import IdentityExistsError, TokenVerificationError

CLIENT_ID = "dummy-client.apps.googleusercontent.com"
CLIENT_SECRET = "dummy-secret"
GOOGLE_TOKEN_URL = "https://oauth2.test/token"
GOOGLE_AUTH_URL = "https://accounts.test/o/oauth2/v2/auth"
FRONTEND_URL = "https://app.example.com/auth/callback"

PROJECT_ID = "demo-project"
CLIENT_EMAIL = "svc@demo-project.iam.gserviceaccount.com"
TOOLKIT_URL = "https://toolkit.test/v1"
SECURETOKEN_JWKS_URL = "https://keys.test/securetoken"
ADMIN_TOKEN_URL = "https://oauth.test/token"


def sign(key, claims: Dict[str, Any], kid: str = "test-kid") -> str:
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": kid})


def google_claims(sub: str = "123", email: Optional[str] = "a@b.com", **extra: Any) -> Dict[str, Any]:
    now = int(time.time())
    claims: Dict[str, Any] = {
        "iss": "https://accounts.google.com",
        "aud": CLIENT_ID,
        "sub": sub,
        "email_verified": True,
        "name": "Ada Lovelace",
        "picture": "https://img.example.com/ada.png",
        "iat": now,
        "exp": now + 3600,
    }
    if email is not None:
        claims["email"] = email
    claims.update(extra)
    return claims


def bearer_claims(uid: str = "google:123", **extra: Any) -> Dict[str, Any]:
    now = int(time.time())
    claims: Dict[str, Any] = {
        "iss": f"https://securetoken.google.com/{PROJECT_ID}",
        "aud": PROJECT_ID,
        "sub": uid,
        "user_id": uid,
        "email": "a@b.com",
        "email_verified": True,
        "auth_time": now - 10,
        "iat": now - 10,
        "exp": now + 3600,
        "firebase": {"identities": {}, "sign_in_provider": "custom"},
    }
    claims.update(extra)
    return claims


class FakeIdentityBackend:
    """In-memory stand-in for the identity backend, recording every call."""

    project_id = "fake-project"

    def __init__(self) -> None:
        self.records: Dict[str, InternalIdentity] = {}
        self.calls: List[str] = []
        self.bearers: Dict[str, Any] = {}
        self.race_on_create = False
        self.last_mint_claims: Optional[Dict[str, Any]] = None

    async def get_identity(self, uid: str) -> InternalIdentity:
        self.calls.append(f"get:{uid}")
        if uid not in self.records:
            raise NotFoundError("Identity not found", f"no user record for uid {uid}")
        return self.records[uid]

    async def create_identity(self, fields: NewIdentity) -> InternalIdentity:
        self.calls.append(f"create:{fields.uid}")
        if self.race_on_create:
            # a concurrent sign-in won between our lookup and our create
            self.records[fields.uid] = InternalIdentity(uid=fields.uid, email="winner@example.com")
        if fields.uid in self.records:
            raise IdentityExistsError(message="create: DUPLICATE_LOCAL_ID", backend_code="DUPLICATE_LOCAL_ID")
        rec = InternalIdentity(
            uid=fields.uid,
            email=fields.email,
            email_verified=fields.email_verified,
            display_name=fields.display_name,
            photo_url=fields.photo_url,
        )
        self.records[fields.uid] = rec
        return rec

    async def mint_session_credential(self, uid: str, claims: Optional[Dict[str, Any]] = None) -> str:
        self.calls.append(f"mint:{uid}")
        self.last_mint_claims = claims
        return f"session-{uid}"

    async def verify_bearer_token(self, raw: str) -> DecodedBearer:
        self.calls.append("verify")
        outcome = self.bearers.get(raw)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise TokenVerificationError(message="unknown token")
        return outcome
