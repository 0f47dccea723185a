# src/fedgate_backend/app/core/trace.py
from __future__ import annotations
import logging
import os
import time
from typing import Any, Mapping

from .logging import setup_logging

setup_logging()

_log = logging.getLogger("fedgate.auth")

# keys whose values are never written, whatever the caller passes
_SECRET_KEYS = ("token", "secret", "credential", "code", "key")

def _enabled() -> bool:
    return (os.getenv("AUTH_TRACE", "")).lower() in ("1", "true", "yes", "on")

def _redact(k: str, v: Any) -> Any:
    lk = k.lower()
    if any(s in lk for s in _SECRET_KEYS):
        return "<redacted>"
    return v

def _fmt_kv(d: Mapping[str, Any]) -> str:
    return " ".join(f"{k}={_redact(k, d[k])}" for k in d)

def auth_trace(event: str, **kv: Any) -> None:
    """
    Single-line auth event, emitted only when AUTH_TRACE is on (read per call).
    Example:
      [auth] oauth.callback.minted ts=... uid=google:123 delivery=redirect

    Values under token/secret/credential/code/key-like names are redacted.
    """
    if not _enabled():
        return
    kv2 = {"ts": int(time.time()), **kv}
    _log.info("[auth] %s %s", event, _fmt_kv(kv2))
