"""
HMAC-SHA256 signature codec.

Shared by outbound webhook delivery (signing) and inbound provider
webhooks (verification). Both directions use the same algorithm with
different secrets.
"""

import base64
import hashlib
import hmac
from collections.abc import Iterable, Mapping

SIGNATURE_PREFIX = "sha256="


def _digest(payload: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()


def sign(payload: bytes, secret: str) -> str:
    """Return the lowercase hex HMAC-SHA256 of the exact payload bytes."""
    return _digest(payload, secret).hex()


def sign_header(payload: bytes, secret: str) -> str:
    """Return the signature in ``sha256=<hex>`` header form."""
    return f"{SIGNATURE_PREFIX}{sign(payload, secret)}"


def verify(provided: str | None, payload: bytes, secret: str) -> bool:
    """
    Verify a provided signature against the payload.

    Accepts an optional ``sha256=`` prefix and either the hex or the
    base64 encoding of the digest. Comparison is constant-time.

    Returns False for malformed input instead of raising.
    """
    if not isinstance(provided, str) or not secret:
        return False
    if not isinstance(payload, (bytes, bytearray)):
        return False

    candidate = provided.strip()
    if candidate.startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]
    if not candidate:
        return False

    try:
        candidate_bytes = candidate.encode("ascii")
    except UnicodeEncodeError:
        return False

    digest = _digest(bytes(payload), secret)
    hex_form = digest.hex().encode("ascii")
    b64_form = base64.b64encode(digest)

    # Evaluate both so timing does not reveal which encoding matched.
    hex_ok = hmac.compare_digest(hex_form, candidate_bytes)
    b64_ok = hmac.compare_digest(b64_form, candidate_bytes)
    return hex_ok or b64_ok


def find_signature(
    headers: Mapping[str, str],
    candidates: Iterable[str],
) -> str | None:
    """
    Return the first non-empty signature header among ``candidates``.

    Header names are matched case-insensitively.
    """
    lowered = {str(k).lower(): v for k, v in headers.items()}
    for name in candidates:
        value = lowered.get(name.lower())
        if value:
            return str(value)
    return None
