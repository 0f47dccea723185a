# src/fedgate_backend/app/schemas/identity.py

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExternalIdentity(BaseModel):
    """
    Identity as reported by the OAuth provider's verified ID token.

    Lives only for the duration of a callback request.
    """

    subject: str
    email: str
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None
    issuer: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "ExternalIdentity":
        return cls(
            subject=str(claims["sub"]),
            email=str(claims["email"]),
            email_verified=bool(claims.get("email_verified")),
            name=claims.get("name"),
            picture=claims.get("picture"),
            issuer=claims.get("iss"),
        )


class IdentityMetadata(BaseModel):
    creation_time: Optional[datetime] = None
    last_sign_in_time: Optional[datetime] = None
    last_refresh_time: Optional[datetime] = None


class ProviderInfo(BaseModel):
    provider_id: str
    uid: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


def _from_millis(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None

def _from_iso(raw: Any) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


class InternalIdentity(BaseModel):
    """
    Canonical identity record held by the identity backend.
    Keyed by uid = "<provider>:<subject>".
    """

    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    phone_number: Optional[str] = None
    disabled: bool = False
    custom_claims: Optional[Dict[str, Any]] = None
    metadata: IdentityMetadata = Field(default_factory=IdentityMetadata)
    provider_data: List[ProviderInfo] = Field(default_factory=list)

    @classmethod
    def from_toolkit(cls, record: Dict[str, Any]) -> "InternalIdentity":
        """Build from an identity toolkit `accounts:lookup` user entry."""
        custom = record.get("customAttributes")
        custom_claims = json.loads(custom) if custom else None
        return cls(
            uid=record["localId"],
            email=record.get("email"),
            email_verified=bool(record.get("emailVerified")),
            display_name=record.get("displayName"),
            photo_url=record.get("photoUrl"),
            phone_number=record.get("phoneNumber"),
            disabled=bool(record.get("disabled")),
            custom_claims=custom_claims,
            metadata=IdentityMetadata(
                creation_time=_from_millis(record.get("createdAt")),
                last_sign_in_time=_from_millis(record.get("lastLoginAt")),
                last_refresh_time=_from_iso(record.get("lastRefreshAt")),
            ),
            provider_data=[
                ProviderInfo(
                    provider_id=p.get("providerId", ""),
                    uid=p.get("rawId"),
                    email=p.get("email"),
                    display_name=p.get("displayName"),
                    photo_url=p.get("photoUrl"),
                )
                for p in record.get("providerUserInfo") or []
            ],
        )


class NewIdentity(BaseModel):
    """Fields used to create an InternalIdentity on first sign-in."""

    uid: str
    email: str
    email_verified: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class DecodedBearer(BaseModel):
    """Verified bearer-credential claims."""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None
    sign_in_provider: Optional[str] = None
    identities: Dict[str, Any] = Field(default_factory=dict)
    claims: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "DecodedBearer":
        fb = claims.get("firebase") or {}
        return cls(
            uid=str(claims["sub"]),
            email=claims.get("email"),
            email_verified=bool(claims.get("email_verified")),
            name=claims.get("name"),
            picture=claims.get("picture"),
            sign_in_provider=fb.get("sign_in_provider"),
            identities=fb.get("identities") or {},
            claims=dict(claims),
        )
