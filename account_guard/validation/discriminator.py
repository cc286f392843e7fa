"""
Type discriminators: 8-byte tags prefixing account data and instruction data.

The tag is the first 8 bytes of ``sha256("<namespace>:<name>")``, with the
``account``, ``global`` (instructions) and ``event`` namespaces used by the
host framework.
"""

import hashlib
from functools import lru_cache

DISCRIMINATOR_LENGTH = 8
ZERO_DISCRIMINATOR = bytes(DISCRIMINATOR_LENGTH)


@lru_cache(maxsize=1024)
def _tag(namespace: str, name: str) -> bytes:
    if not name:
        raise ValueError("discriminator name must not be empty")
    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:DISCRIMINATOR_LENGTH]


def account_discriminator(name: str) -> bytes:
    """Discriminator for an account type, e.g. ``account_discriminator("Vault")``."""
    return _tag("account", name)


def instruction_discriminator(name: str) -> bytes:
    """Discriminator for an instruction handler (``global`` namespace)."""
    return _tag("global", name)


def event_discriminator(name: str) -> bytes:
    return _tag("event", name)


def is_zeroed(data: bytes | bytearray) -> bool:
    """True when the discriminator slot of ``data`` is all zero."""
    return bytes(data[:DISCRIMINATOR_LENGTH]) == ZERO_DISCRIMINATOR
