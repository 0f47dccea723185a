# src/fedgate_backend/app/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

# ------------------------
# Defaults (Google / Firebase public endpoints)
# ------------------------
DEFAULT_GOOGLE_AUTH_URI   = "https://accounts.google.com/o/oauth2/v2/auth"
DEFAULT_GOOGLE_TOKEN_URI  = "https://oauth2.googleapis.com/token"
DEFAULT_GOOGLE_JWKS_URI   = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS            = ("https://accounts.google.com", "accounts.google.com")

DEFAULT_IDENTITY_TOOLKIT_URI  = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_SECURETOKEN_JWKS_URI  = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)
DEFAULT_OAUTH_TOKEN_URI       = "https://oauth2.googleapis.com/token"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip()

def _env_opt(name: str) -> Optional[str]:
    val = _env(name)
    return val or None

def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Provider (Google OAuth client)
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None
    google_auth_uri: str = DEFAULT_GOOGLE_AUTH_URI
    google_token_uri: str = DEFAULT_GOOGLE_TOKEN_URI
    google_jwks_uri: str = DEFAULT_GOOGLE_JWKS_URI
    google_issuers: Tuple[str, ...] = GOOGLE_ISSUERS

    # Where the session credential is delivered when no ?redirect= is given
    frontend_redirect_url: Optional[str] = None

    # Identity backend credential material (either the blob or all three fields)
    firebase_service_account_key: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[str] = None

    identity_toolkit_uri: str = DEFAULT_IDENTITY_TOOLKIT_URI
    securetoken_jwks_uri: str = DEFAULT_SECURETOKEN_JWKS_URI
    oauth_token_uri: str = DEFAULT_OAUTH_TOKEN_URI

    http_timeout: float = 15.0
    test_mode: bool = False

    @property
    def provider_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        private_key = _env_opt("FIREBASE_PRIVATE_KEY")
        if private_key:
            # keys pasted into .env files usually carry literal "\n"
            private_key = private_key.replace("\\n", "\n")
        return cls(
            google_client_id=_env_opt("GOOGLE_CLIENT_ID"),
            google_client_secret=_env_opt("GOOGLE_CLIENT_SECRET"),
            google_redirect_uri=_env_opt("GOOGLE_REDIRECT_URI"),
            google_auth_uri=_env("GOOGLE_AUTH_URI", DEFAULT_GOOGLE_AUTH_URI),
            google_token_uri=_env("GOOGLE_TOKEN_URI", DEFAULT_GOOGLE_TOKEN_URI),
            google_jwks_uri=_env("GOOGLE_JWKS_URI", DEFAULT_GOOGLE_JWKS_URI),
            frontend_redirect_url=_env_opt("FRONTEND_REDIRECT_URL"),
            firebase_service_account_key=_env_opt("FIREBASE_SERVICE_ACCOUNT_KEY"),
            firebase_project_id=_env_opt("FIREBASE_PROJECT_ID"),
            firebase_client_email=_env_opt("FIREBASE_CLIENT_EMAIL"),
            firebase_private_key=private_key,
            identity_toolkit_uri=_env("IDENTITY_TOOLKIT_URI", DEFAULT_IDENTITY_TOOLKIT_URI).rstrip("/"),
            securetoken_jwks_uri=_env("SECURETOKEN_JWKS_URI", DEFAULT_SECURETOKEN_JWKS_URI),
            oauth_token_uri=_env("GOOGLE_OAUTH_TOKEN_URI", DEFAULT_OAUTH_TOKEN_URI),
            http_timeout=_env_float("HTTP_TIMEOUT_SEC", 15.0),
            test_mode=_env_bool("TEST_MODE"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings are read from the environment once; tests call get_settings.cache_clear()."""
    return Settings.from_env()
