# Maps provider identities -> internal identity records. Get-or-create, never overwrite.
from __future__ import annotations

from typing import Any

from fedgate_backend.app.core.errors import NotFoundError
from fedgate_backend.app.core.trace import auth_trace
from fedgate_backend.app.schemas.identity import ExternalIdentity, InternalIdentity, NewIdentity
from fedgate_backend.app.services.identity_backend import IdentityExistsError


def provider_uid(provider: str, subject: str) -> str:
    """Stable internal id: "<provider>:<subject>"."""
    return f"{provider}:{subject}"


async def resolve_identity(backend: Any, provider: str, external: ExternalIdentity) -> InternalIdentity:
    """
    Return the InternalIdentity for this external subject, creating it on first sign-in.

    An existing record is returned untouched. If a concurrent first sign-in created
    the record between our lookup and our create, the backend rejects the duplicate
    uid and we read the winner's record instead.
    """
    uid = provider_uid(provider, external.subject)
    try:
        identity = await backend.get_identity(uid)
        auth_trace("identity.found", uid=uid)
        return identity
    except NotFoundError:
        pass

    fields = NewIdentity(
        uid=uid,
        email=external.email,
        email_verified=external.email_verified,
        display_name=external.name,
        photo_url=external.picture,
    )
    try:
        identity = await backend.create_identity(fields)
    except IdentityExistsError:
        auth_trace("identity.create_raced", uid=uid)
        return await backend.get_identity(uid)

    auth_trace("identity.created", uid=uid)
    return identity
