"""Webhook signature verification.

Inbound webhook bodies are signed with HMAC-SHA256 over the exact raw bytes,
hex encoded and prefixed ``sha256=``. Verification is constant time and
returns a bare boolean so callers can answer every failure the same way.
"""

import hashlib
import hmac
from typing import Optional, Union

SIGNATURE_PREFIX = "sha256="


def _as_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(secret: Union[str, bytes], body: bytes) -> str:
    """Signature header value for ``body``: ``sha256=<lowercase hex>``."""
    digest = hmac.new(_as_bytes(secret), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    secret: Optional[Union[str, bytes]],
    body: bytes,
    header: Optional[str]
) -> bool:
    """Check a signature header against the body.

    False when the secret is not configured, the header is missing or
    malformed, or the digest does not match.
    """
    if not secret or not header:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected.encode("ascii"), header.strip().lower().encode("utf-8"))
