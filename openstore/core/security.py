# openstore/core/security.py
from __future__ import annotations

import binascii
import hashlib

# Fixed salt: API keys are looked up by their hash, so hashing must be deterministic.
_PBKDF2_SALT = b"openstore-apikey"
_PBKDF2_ITERS = 100_000


def hash_api_key(api_key: str) -> str:
    """
    Derive a PBKDF2-HMAC-SHA256 hash of an API key.
    """
    dk = hashlib.pbkdf2_hmac(
        "sha256",
        api_key.encode("utf-8"),
        _PBKDF2_SALT,
        _PBKDF2_ITERS,
    )
    return binascii.hexlify(dk).decode("ascii")

