"""Source of cryptographically strong random bytes."""

from __future__ import annotations

import os

from kvikpy.errors import InvalidArgumentError, KvikError


def get_random_bytes(length: int) -> bytes:
    """Return ``length`` random bytes from the operating system."""
    if length < 0:
        raise InvalidArgumentError(f"invalid length: {length}")
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as exc:
        raise KvikError("random bytes generation failed") from exc