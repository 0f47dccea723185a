import asyncio

from fedgate_backend.app.schemas.identity import ExternalIdentity, InternalIdentity
from fedgate_backend.app.services.identity import provider_uid, resolve_identity

from helpers import FakeIdentityBackend, google_claims


def _external(sub="123", email="a@b.com"):
    return ExternalIdentity.from_claims(google_claims(sub=sub, email=email))


def test_uid_is_deterministic():
    assert provider_uid("google", "123") == "google:123"
    assert provider_uid("google", "123") == provider_uid("google", "123")
    assert provider_uid("google", "123") != provider_uid("apple", "123")


def test_first_sign_in_creates_identity_from_claims():
    backend = FakeIdentityBackend()
    rec = asyncio.run(resolve_identity(backend, "google", _external()))

    assert rec.uid == "google:123"
    assert rec.email == "a@b.com"
    assert rec.email_verified is True
    assert rec.display_name == "Ada Lovelace"
    assert rec.photo_url == "https://img.example.com/ada.png"
    assert backend.calls == ["get:google:123", "create:google:123"]


def test_resolution_is_idempotent_and_never_overwrites():
    backend = FakeIdentityBackend()
    first = asyncio.run(resolve_identity(backend, "google", _external()))
    second = asyncio.run(resolve_identity(backend, "google", _external(email="changed@b.com")))

    assert first.uid == second.uid == "google:123"
    assert second.email == "a@b.com"
    assert len(backend.records) == 1
    assert backend.calls.count("create:google:123") == 1


def test_existing_record_is_returned_untouched():
    backend = FakeIdentityBackend()
    backend.records["google:123"] = InternalIdentity(uid="google:123", email="old@b.com", disabled=True)

    rec = asyncio.run(resolve_identity(backend, "google", _external()))

    assert rec.email == "old@b.com"
    assert rec.disabled is True
    assert backend.calls == ["get:google:123"]


def test_concurrent_first_sign_in_converges_on_existing_record():
    backend = FakeIdentityBackend()
    backend.race_on_create = True

    rec = asyncio.run(resolve_identity(backend, "google", _external()))

    assert rec.email == "winner@example.com"
    assert backend.calls == ["get:google:123", "create:google:123", "get:google:123"]
