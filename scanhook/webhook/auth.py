"""Delivery signature verification (``X-Hub-Signature-256``)."""

from __future__ import annotations

import hashlib
import hmac
import logging
from enum import StrEnum

from scanhook.errors import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class SignatureVerdict(StrEnum):
    VERIFIED = "verified"
    UNSIGNED = "unsigned"  # secret configured, header absent, accepted by policy
    SKIPPED = "skipped"  # no secret configured


def compute_signature(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` HMAC of the exact request bytes."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check *signature* against *body*.

    Uses constant-time comparison to prevent timing attacks.
    """
    if not signature or not secret:
        return False
    return hmac.compare_digest(signature.encode(), compute_signature(body, secret).encode())


def check_delivery_signature(
    body: bytes,
    signature: str | None,
    secret: str,
    *,
    require_signature: bool = False,
) -> SignatureVerdict:
    """Apply the signature policy to one delivery.

    Without a configured secret every delivery is accepted unauthenticated.
    With a secret but no signature header the delivery is also accepted,
    unless *require_signature* is set. A present but wrong signature raises
    `AuthenticationError`.
    """
    if not secret:
        return SignatureVerdict.SKIPPED
    if not signature:
        if require_signature:
            logger.warning("Signature rejected: header missing and signatures are required")
            msg = "missing signature"
            raise AuthenticationError(msg)
        logger.warning("Delivery has no signature header, accepting unauthenticated")
        return SignatureVerdict.UNSIGNED
    if not verify_signature(body, signature, secret):
        logger.warning("Signature rejected: mismatch")
        msg = "invalid signature"
        raise AuthenticationError(msg)
    return SignatureVerdict.VERIFIED
