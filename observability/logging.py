from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

LOGGER_NAME = "bridge_wallet"

# Field names whose values must never reach a log line.
_REDACT_KEYS = frozenset({"private_key", "privatekey", "key", "keys", "signature", "custom_signature", "raw"})


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        level = (os.getenv("BRIDGE_LOG_LEVEL") or "info").strip().upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        logger.propagate = False
    return logger


def build_log_context(**fields: Any) -> Dict[str, Any]:
    """
    Static context attached to every event emitted by a component.

    None values are dropped so contexts can be built from optional settings.
    """
    ctx = {"service": (os.getenv("BRIDGE_SERVICE_NAME") or "bridge-wallet").strip()}
    for k, v in fields.items():
        if v is not None:
            ctx[k] = v
    return ctx


def _scrub(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in data.items():
        if k.lower() in _REDACT_KEYS:
            out[k] = "***REDACTED***"
        elif isinstance(v, dict):
            out[k] = _scrub(v)
        elif isinstance(v, bytes):
            out[k] = "0x" + v.hex()
        else:
            out[k] = v
    return out


def log_event(
    event: str,
    *,
    ctx: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    level: str = "info",
) -> None:
    payload = {
        "ts_ms": int(time.time() * 1000),
        "event": event,
        **(ctx or {}),
        "data": _scrub(data or {}),
    }
    get_logger().log(
        getattr(logging, level.upper(), logging.INFO),
        json.dumps(payload, sort_keys=True, default=str),
    )
