# src/fedgate_backend/app/auth/redirects.py
from __future__ import annotations

from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

SAFE_SCHEMES = ("http", "https")


def is_safe_redirect(target: Optional[str]) -> bool:
    """
    Only relative paths ("/...") and absolute http(s) URLs are acceptable
    delivery targets. Protocol-relative "//host" is not a relative path.
    """
    if not target or not isinstance(target, str):
        return False
    if target.startswith("/"):
        return not target.startswith("//") and not target.startswith("/\\")
    try:
        parts = urlsplit(target)
    except ValueError:
        return False
    return parts.scheme.lower() in SAFE_SCHEMES and bool(parts.netloc)


def resolve_target(explicit: Optional[str], default: Optional[str]) -> Optional[str]:
    """?redirect= wins over the configured frontend URL."""
    if isinstance(explicit, str) and explicit:
        return explicit
    return default or None


def with_query(target: str, params: Dict[str, str]) -> str:
    """Set `params` on the target's query string, keeping what is already there."""
    parts = urlsplit(target)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def delivery_url(
    explicit: Optional[str],
    default: Optional[str],
    session_credential: str,
    state: Optional[str] = None,
) -> Optional[str]:
    """
    Where to send the browser with its session credential, or None when the
    caller should answer with JSON instead (no target, or an unsafe one).
    """
    target = resolve_target(explicit, default)
    if not is_safe_redirect(target):
        return None
    params = {"sessionCredential": session_credential}
    if isinstance(state, str) and state:
        params["state"] = state
    return with_query(target, params)
