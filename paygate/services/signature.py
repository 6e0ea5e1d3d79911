"""
Webhook signature verification.

The provider signs the raw request body with HMAC-SHA256 using the shared
webhook secret. Verification must run on the bytes exactly as received;
re-serialising parsed JSON changes the bytes and breaks the signature.
"""
import base64
import hashlib
import hmac
from typing import Optional


def compute_webhook_signature(raw_body: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """
    Check a webhook signature header against the raw body.

    Accepts the base64 digest as well as the lowercase hex digest. Both
    comparisons are constant time.
    """
    if not signature or not secret:
        return False

    digest = compute_webhook_signature(raw_body, secret)
    supplied = signature.strip().encode("utf-8")

    as_base64 = hmac.compare_digest(base64.b64encode(digest), supplied)
    as_hex = hmac.compare_digest(digest.hex().encode("utf-8"), supplied)
    return as_base64 or as_hex
