# tests/conftest.py
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from fedgate_backend.app.core.config import get_settings
from fedgate_backend.app.main import app
from fedgate_backend.app.services.identity_backend import identity_backend

from helpers import CLIENT_ID, CLIENT_SECRET, GOOGLE_AUTH_URL, GOOGLE_TOKEN_URL, FakeIdentityBackend

_ENV_VARS = (
    "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI", "GOOGLE_AUTH_URI",
    "GOOGLE_TOKEN_URI", "GOOGLE_JWKS_URI", "FRONTEND_REDIRECT_URL",
    "FIREBASE_SERVICE_ACCOUNT_KEY", "FIREBASE_PROJECT_ID", "FIREBASE_CLIENT_EMAIL",
    "FIREBASE_PRIVATE_KEY", "IDENTITY_TOOLKIT_URI", "SECURETOKEN_JWKS_URI",
    "GOOGLE_OAUTH_TOKEN_URI", "TEST_MODE",
)


@pytest.fixture(autouse=True)
def _env_setup(monkeypatch):
    """Known provider config, no backend credentials, fresh settings + backend per test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GOOGLE_CLIENT_ID", CLIENT_ID)
    monkeypatch.setenv("GOOGLE_CLIENT_SECRET", CLIENT_SECRET)
    monkeypatch.setenv("GOOGLE_AUTH_URI", GOOGLE_AUTH_URL)
    monkeypatch.setenv("GOOGLE_TOKEN_URI", GOOGLE_TOKEN_URL)
    get_settings.cache_clear()
    identity_backend.reset()
    yield
    get_settings.cache_clear()
    identity_backend.reset()


# ---------- Keys ----------
@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)

@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")

@pytest.fixture(scope="session")
def public_jwk(rsa_private_key) -> Dict[str, Any]:
    jwk = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    jwk.update({"kid": "test-kid", "alg": "RS256", "use": "sig"})
    return jwk

@pytest.fixture
def google_jwks(monkeypatch, rsa_private_key):
    """Serve the test public key as Google's signing key (no JWKS download)."""
    stub = SimpleNamespace(
        get_signing_key_from_jwt=lambda _tok: SimpleNamespace(key=rsa_private_key.public_key())
    )
    monkeypatch.setattr("fedgate_backend.app.auth.provider._jwks_client", lambda _uri: stub)
    return stub


# ---------- Backend & clients ----------
@pytest.fixture
def fake_backend() -> FakeIdentityBackend:
    fake = FakeIdentityBackend()
    identity_backend.override(fake)
    return fake

@pytest.fixture
def client() -> TestClient:
    return TestClient(app, follow_redirects=False)
