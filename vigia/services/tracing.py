# vigia/services/tracing.py
from __future__ import annotations

import secrets
from typing import Any, Optional


def span_id() -> str:
    """Short random id tying together the log lines of one request."""
    return secrets.token_hex(4)


def mask_token(value: Optional[Any], left: int = 6, right: int = 6) -> Optional[str]:
    """`abcdefghijklmnopqrstuvwxyz` -> `abcdef…uvwxyz(26)`; user ids are never logged in full."""
    if not value:
        return None
    s = str(value)
    if len(s) <= left + right:
        return s
    return f"{s[:left]}…{s[-right:]}({len(s)})"
