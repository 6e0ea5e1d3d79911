"""
Payment proofs.

A proof is a compact RS256 JWT carrying the transaction claims plus iat/exp.
Consumers verify it with the public half of the signing key; this service
never verifies its own tokens.
"""
import logging
import time
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..config import settings
from ..errors import SigningKeyError

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


def load_private_key(pem: Optional[str]) -> rsa.RSAPrivateKey:
    if not pem:
        raise SigningKeyError("Proof signing key is not configured")
    # keys passed through env files often carry escaped newlines
    pem = pem.replace("\\n", "\n").strip()
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningKeyError("Proof signing key could not be loaded", {"reason": str(e)})
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningKeyError("Proof signing key is not an RSA key")
    return key


@lru_cache(maxsize=1)
def get_signing_key() -> rsa.RSAPrivateKey:
    """Process-wide signing key, loaded once from settings."""
    return load_private_key(settings.rs_priv_pem)


def sign_proof(
    claims: Dict[str, Any],
    private_key: Optional[rsa.RSAPrivateKey] = None,
    ttl_seconds: Optional[int] = None,
    now: Optional[int] = None,
) -> str:
    """
    Sign claims into a proof token valid for ttl_seconds from now.

    Args:
        claims: txid, amount, currency, orderId
        private_key: defaults to the configured signing key
        ttl_seconds: defaults to settings.proof_ttl_seconds (300)
        now: issue time as unix seconds, for fixed clocks

    Raises:
        SigningKeyError: key missing/unreadable or signing failed
    """
    key = private_key or get_signing_key()
    iat = int(now if now is not None else time.time())
    ttl = ttl_seconds if ttl_seconds is not None else settings.proof_ttl_seconds
    payload = dict(claims, iat=iat, exp=iat + ttl)
    try:
        return jwt.encode(payload, key, algorithm=ALGORITHM, headers={"typ": "JWT"})
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        logger.error(f"Failed to sign proof for {claims.get('txid')}: {e}")
        raise SigningKeyError("Failed to sign proof", {"reason": str(e)})
