"""
Signature checks for gateway webhooks.

Paystack signs the raw request body with HMAC-SHA512 keyed by the account
secret key and sends the hex digest in the x-paystack-signature header.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha512(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_paystack_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    if not secret:
        logger.error("Webhook received but PAYSTACK_SECRET_KEY is not configured")
        return False
    if not signature:
        logger.warning("Webhook rejected: missing x-paystack-signature header")
        return False

    expected = compute_hmac_sha512(secret, payload)
    if not constant_time_compare(expected, signature.strip().lower()):
        logger.warning("Webhook rejected: signature mismatch")
        return False
    return True
