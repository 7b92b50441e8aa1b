"""
Auth — API Key Validation

Optional API key gate for the HTTP service. Keys come from the
PATTERNSHIELD_API_KEYS environment variable (comma-separated) and are
held only as SHA-256 hashes. With no keys configured the gate is off,
which is how the browser extension talks to a local instance.

Checked via a FastAPI dependency that can be injected into any route.
"""

from __future__ import annotations

import hashlib
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

KEY_PREFIX = "ps_"


def _hash_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def load_key_hashes(raw: str) -> set[str]:
    """Parse a comma-separated key list into a set of hashes."""
    return {_hash_key(k.strip()) for k in raw.split(",") if k.strip()}


_VALID_KEY_HASHES: set[str] = load_key_hashes(os.getenv("PATTERNSHIELD_API_KEYS", ""))

# Dev mode: if no keys configured, auth is disabled
AUTH_ENABLED = len(_VALID_KEY_HASHES) > 0


def verify_key(api_key: Optional[str], valid_hashes: Optional[set[str]] = None) -> bool:
    if not api_key:
        return False
    hashes = _VALID_KEY_HASHES if valid_hashes is None else valid_hashes
    return _hash_key(api_key) in hashes


async def require_api_key(
    api_key: Optional[str] = Security(API_KEY_HEADER),
) -> Optional[str]:
    """
    FastAPI dependency — validates the X-API-Key header.

    Returns a short key id for request logs (never the key itself),
    or None when auth is disabled.
    """
    if not AUTH_ENABLED:
        return None

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include X-API-Key header.",
        )

    if not verify_key(api_key):
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return _hash_key(api_key)[:12]


def generate_api_key() -> str:
    """Generate a new API key. Utility for key provisioning."""
    return f"{KEY_PREFIX}{secrets.token_urlsafe(32)}"
