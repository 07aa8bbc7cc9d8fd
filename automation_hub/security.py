"""Keyed-signature helpers for inbound webhook verification."""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any


def signing_body(payload: Any) -> bytes:
    """Return the bytes a webhook signature is computed over.

    Raw bodies are used as-is. Parsed payloads are re-serialized as compact
    JSON, which only matches the sender's signature if it signed the same
    canonical form.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(secret: str, payload: Any, prefix: str = "") -> str:
    """HMAC-SHA256 hex digest of the payload, with an optional prefix (e.g. ``sha256=``)."""
    digest = hmac.new(secret.encode("utf-8"), signing_body(payload), hashlib.sha256).hexdigest()
    return f"{prefix}{digest}"


def _to_bytes(value: str) -> bytes:
    # Header text may carry surrogates for undecodable bytes; keep them comparable.
    return value.encode("utf-8", "surrogatepass")


def verify_hmac_sha256(secret: str, payload: Any, signature: str | None, prefix: str = "") -> bool:
    """Check an HMAC-SHA256 signature in constant time."""
    if not signature:
        return False
    if prefix and signature.startswith(prefix):
        signature = signature[len(prefix) :]
    expected = compute_signature(secret, payload)
    return hmac.compare_digest(_to_bytes(signature.strip().lower()), expected.encode("ascii"))


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two shared tokens without leaking timing information."""
    return hmac.compare_digest(_to_bytes(a), _to_bytes(b))
