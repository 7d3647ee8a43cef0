"""Identifier helpers."""

import time
from uuid import uuid4


def new_id() -> str:
    """Return an opaque id that sorts roughly by creation time."""
    return f"{time.time_ns() // 1_000_000}-{uuid4().hex[:8]}"
