# src/fedgate_backend/app/services/identity_backend.py
"""
Client for the identity backend (Firebase Authentication REST surface).

The backend stores InternalIdentity records, verifies the bearer credentials it
issues, and is the authority whose service-account key signs session
credentials. Everything here is async; outbound calls use httpx.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from cryptography.hazmat.primitives import serialization

from fedgate_backend.app.core.config import Settings, get_settings
from fedgate_backend.app.core.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    UpstreamError,
)
from fedgate_backend.app.core.trace import auth_trace
from fedgate_backend.app.schemas.identity import DecodedBearer, InternalIdentity, NewIdentity

logger = logging.getLogger(__name__)

# Audience the identity toolkit expects on custom (session) tokens
CUSTOM_TOKEN_AUDIENCE = (
    "https://identitytoolkit.googleapis.com/google.identity.identitytoolkit.v1.IdentityToolkit"
)
SECURETOKEN_ISSUER = "https://securetoken.google.com/"
ADMIN_SCOPES = "https://www.googleapis.com/auth/identitytoolkit https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

SESSION_CREDENTIAL_TTL = 3600
JWKS_TTL = 3600
ACCESS_TOKEN_SKEW = 60

RESERVED_CLAIMS = frozenset({
    "acr", "amr", "at_hash", "aud", "auth_time", "azp", "cnf", "c_hash",
    "exp", "firebase", "iat", "iss", "jti", "nbf", "nonce", "sub",
})


# ------------------------
# Errors
# ------------------------
class TokenExpiredError(AuthenticationError):
    default_error = "Token expired"

class TokenMalformedError(AuthenticationError):
    default_error = "Malformed token"

class TokenVerificationError(AuthenticationError):
    default_error = "Token verification failed"


class IdentityBackendError(UpstreamError):
    """Non-200 answer (or transport failure) from the identity backend."""
    default_error = "Identity backend call failed"

    def __init__(self, error: Optional[str] = None, message: Optional[str] = None,
                 *, backend_code: Optional[str] = None) -> None:
        super().__init__(error, message)
        self.backend_code = backend_code

    @classmethod
    def from_response(cls, op: str, r: httpx.Response) -> "IdentityBackendError":
        code: Optional[str] = None
        try:
            code = (r.json().get("error") or {}).get("message")
        except ValueError:
            pass
        detail = code or r.text[:200]
        if code and code.split(" ", 1)[0] == "DUPLICATE_LOCAL_ID":
            return IdentityExistsError(message=f"{op}: {detail}", backend_code=code)
        return cls(message=f"{op} failed: {r.status_code} {detail}", backend_code=code)


class IdentityExistsError(IdentityBackendError):
    default_error = "Identity already exists"


# ------------------------
# Credential material
# ------------------------
@dataclass(frozen=True)
class ServiceAccount:
    project_id: str
    client_email: str
    private_key: str
    private_key_id: Optional[str] = None


def load_service_account(settings: Settings) -> ServiceAccount:
    """
    Credential material comes either as one JSON blob or as three discrete fields.
    The blob wins when both are present.
    """
    if settings.firebase_service_account_key:
        try:
            data = json.loads(settings.firebase_service_account_key)
        except ValueError as ex:
            raise ConfigurationError(
                "Identity backend not configured",
                f"FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON: {ex}",
            )
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Identity backend not configured",
                "FIREBASE_SERVICE_ACCOUNT_KEY must be a JSON object",
            )
        missing = [k for k in ("project_id", "client_email", "private_key") if not data.get(k)]
        if missing:
            raise ConfigurationError(
                "Identity backend not configured",
                f"FIREBASE_SERVICE_ACCOUNT_KEY missing: {', '.join(missing)}",
            )
        return ServiceAccount(
            project_id=data["project_id"],
            client_email=data["client_email"],
            private_key=data["private_key"],
            private_key_id=data.get("private_key_id"),
        )

    if settings.firebase_project_id and settings.firebase_client_email and settings.firebase_private_key:
        return ServiceAccount(
            project_id=settings.firebase_project_id,
            client_email=settings.firebase_client_email,
            private_key=settings.firebase_private_key,
        )

    raise ConfigurationError(
        "Identity backend not configured",
        "set FIREBASE_SERVICE_ACCOUNT_KEY or FIREBASE_PROJECT_ID/FIREBASE_CLIENT_EMAIL/FIREBASE_PRIVATE_KEY",
    )


# ------------------------
# Backend client
# ------------------------
class IdentityBackend:
    def __init__(self, account: ServiceAccount, settings: Settings):
        try:
            self._signing_key = serialization.load_pem_private_key(
                account.private_key.encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as ex:
            raise ConfigurationError(
                "Identity backend not configured",
                f"service account private key could not be loaded: {ex}",
            )
        self.account = account
        self.project_id = account.project_id
        self._toolkit = settings.identity_toolkit_uri
        self._jwks_uri = settings.securetoken_jwks_uri
        self._oauth_token_uri = settings.oauth_token_uri
        self._timeout = settings.http_timeout

        self._jwks: Optional[jwt.PyJWKSet] = None
        self._jwks_fetched_at = 0.0
        self._access_token: Optional[str] = None
        self._access_token_exp = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityBackend":
        return cls(load_service_account(settings), settings)

    # --- bearer credential verification ---
    async def _signing_keys(self) -> jwt.PyJWKSet:
        now = time.time()
        if self._jwks is not None and now - self._jwks_fetched_at < JWKS_TTL:
            return self._jwks
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                r = await client.get(self._jwks_uri)
            r.raise_for_status()
            keys = jwt.PyJWKSet.from_dict(r.json())
        except (httpx.HTTPError, ValueError, jwt.PyJWTError) as ex:
            raise TokenVerificationError(message=f"could not fetch signing keys: {ex}")
        self._jwks, self._jwks_fetched_at = keys, now
        return keys

    async def verify_bearer_token(self, raw: str) -> DecodedBearer:
        try:
            header = jwt.get_unverified_header(raw)
        except jwt.DecodeError as ex:
            raise TokenMalformedError(message=str(ex))
        if header.get("alg") != "RS256":
            raise TokenMalformedError(message=f"unexpected alg: {header.get('alg')}")
        kid = header.get("kid")
        if not kid:
            raise TokenMalformedError(message="token header has no kid")

        keys = await self._signing_keys()
        try:
            key = keys[kid].key
        except KeyError:
            raise TokenVerificationError(message=f"no signing key for kid {kid}")

        try:
            claims = jwt.decode(
                raw,
                key=key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=SECURETOKEN_ISSUER + self.project_id,
                options={"require": ["exp", "iat", "aud", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as ex:
            raise TokenExpiredError(message=str(ex))
        except jwt.InvalidSignatureError as ex:
            raise TokenVerificationError(message=str(ex))
        except jwt.DecodeError as ex:
            raise TokenMalformedError(message=str(ex))
        except jwt.PyJWTError as ex:
            raise TokenVerificationError(message=str(ex))

        if not isinstance(claims.get("sub"), str) or not claims["sub"] or len(claims["sub"]) > 128:
            raise TokenVerificationError(message="sub claim must be a non-empty string of at most 128 chars")
        return DecodedBearer.from_claims(claims)

    # --- admin REST calls ---
    async def _admin_token(self, client: httpx.AsyncClient) -> str:
        now = time.time()
        if self._access_token and now < self._access_token_exp - ACCESS_TOKEN_SKEW:
            return self._access_token

        iat = int(now)
        assertion = jwt.encode(
            {
                "iss": self.account.client_email,
                "sub": self.account.client_email,
                "aud": self._oauth_token_uri,
                "scope": ADMIN_SCOPES,
                "iat": iat,
                "exp": iat + 3600,
            },
            self._signing_key,
            algorithm="RS256",
        )
        r = await client.post(
            self._oauth_token_uri,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            headers={"Accept": "application/json"},
        )
        if r.status_code != 200:
            raise IdentityBackendError(message=f"access token request failed: {r.status_code} {r.text[:200]}")
        tok = r.json()
        self._access_token = tok["access_token"]
        self._access_token_exp = now + int(tok.get("expires_in", 3600))
        return self._access_token

    async def _call(self, op: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._toolkit}/projects/{self.project_id}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                token = await self._admin_token(client)
                r = await client.post(url, json=payload, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as ex:
            raise IdentityBackendError(message=f"{op} failed: {ex}")
        if r.status_code != 200:
            raise IdentityBackendError.from_response(op, r)
        return r.json()

    async def get_identity(self, uid: str) -> InternalIdentity:
        data = await self._call("lookup", "accounts:lookup", {"localId": [uid]})
        users = data.get("users") or []
        if not users:
            raise NotFoundError("Identity not found", f"no user record for uid {uid}")
        return InternalIdentity.from_toolkit(users[0])

    async def create_identity(self, fields: NewIdentity) -> InternalIdentity:
        payload = {
            "localId": fields.uid,
            "email": fields.email,
            "emailVerified": fields.email_verified,
            "displayName": fields.display_name,
            "photoUrl": fields.photo_url,
        }
        data = await self._call(
            "create", "accounts", {k: v for k, v in payload.items() if v is not None}
        )
        auth_trace("backend.identity_created", uid=fields.uid)
        return await self.get_identity(data.get("localId") or fields.uid)

    # --- session credential ---
    async def mint_session_credential(self, uid: str, claims: Optional[Dict[str, Any]] = None) -> str:
        if not uid or len(uid) > 128:
            raise ValueError("uid must be a non-empty string of at most 128 chars")
        reserved = RESERVED_CLAIMS.intersection(claims or {})
        if reserved:
            raise ValueError(f"reserved claims not allowed: {', '.join(sorted(reserved))}")

        now = int(time.time())
        payload: Dict[str, Any] = {
            "iss": self.account.client_email,
            "sub": self.account.client_email,
            "aud": CUSTOM_TOKEN_AUDIENCE,
            "iat": now,
            "exp": now + SESSION_CREDENTIAL_TTL,
            "uid": uid,
        }
        if claims:
            payload["claims"] = dict(claims)
        headers = {"kid": self.account.private_key_id} if self.account.private_key_id else None
        return jwt.encode(payload, self._signing_key, algorithm="RS256", headers=headers)


# ------------------------
# Lazy, single-flight singleton
# ------------------------
class LazyIdentityBackend:
    """
    Initializes the backend on first use, at most once per process.

    The outcome (live client or ConfigurationError) is memoized; after a
    configuration failure every call re-raises the same error without
    re-running the factory.
    """

    def __init__(self, factory: Callable[[], IdentityBackend]):
        self._factory = factory
        self._lock = threading.Lock()
        self._backend: Optional[IdentityBackend] = None
        self._error: Optional[ConfigurationError] = None
        self.init_attempts = 0

    def get(self) -> IdentityBackend:
        backend, error = self._backend, self._error
        if backend is not None:
            return backend
        if error is not None:
            # drop the previous raise's frames so the memoized error does not grow
            raise error.with_traceback(None)

        with self._lock:
            if self._backend is None and self._error is None:
                self.init_attempts += 1
                try:
                    backend = self._factory()
                except ConfigurationError as ex:
                    logger.error("identity backend initialization failed: %s", ex.message or ex.error)
                    self._error = ex
                else:
                    auth_trace("backend.initialized", project=getattr(backend, "project_id", None))
                    self._backend = backend
            if self._error is not None:
                raise self._error.with_traceback(None)
            return self._backend

    def reset(self, factory: Optional[Callable[[], IdentityBackend]] = None) -> None:
        with self._lock:
            if factory is not None:
                self._factory = factory
            self._backend = None
            self._error = None
            self.init_attempts = 0

    def override(self, backend: Any) -> None:
        """Install a ready backend (tests, embedding)."""
        with self._lock:
            self._backend = backend
            self._error = None


identity_backend = LazyIdentityBackend(lambda: IdentityBackend.from_settings(get_settings()))

def get_identity_backend() -> IdentityBackend:
    return identity_backend.get()
