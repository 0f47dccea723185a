# src/fedgate_backend/app/core/logging.py
from __future__ import annotations
import logging
import os

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR":    logging.ERROR,
    "WARNING":  logging.WARNING,
    "INFO":     logging.INFO,
    "DEBUG":    logging.DEBUG,
    "NOTSET":   logging.NOTSET,
}

# httpx logs every request URL at INFO; token, toolkit and JWKS calls stay out of the log
_OUTBOUND_LOGGERS = ("httpx", "httpcore")

def _level_from_env(var: str, default: str = "INFO") -> int:
    val = (os.getenv(var, default) or "").strip().upper()
    return _LEVELS.get(val, _LEVELS[default])

def _quiet_outbound() -> None:
    level = max(logging.WARNING, _level_from_env("HTTP_LOG_LEVEL", "WARNING"))
    for name in _OUTBOUND_LOGGERS:
        logging.getLogger(name).setLevel(level)

def setup_logging() -> None:
    """
    Configure root logging once. Idempotent.
    LOG_LEVEL controls gateway verbosity (default INFO); outbound HTTP client
    loggers never go below WARNING.
    """
    root = logging.getLogger()
    _quiet_outbound()
    if root.handlers:
        # already configured (pytest, uvicorn, etc.)
        root.setLevel(_level_from_env("LOG_LEVEL", "INFO"))
        return

    level = _level_from_env("LOG_LEVEL", "INFO")
    fmt = "%(asctime)s.%(msecs)03d %(levelname)-8s [fedgate] %(name)s %(message)s"
    datefmt = "%Y-%m-%dT%H:%M:%S"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))

    root.setLevel(level)
    root.addHandler(handler)
