"""Webhook signature verification and sender authorization."""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Collection

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """Return the ``X-Hub-Signature-256`` value GitHub would send for ``body``."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(body: bytes, secret: str | None, signature: str | None) -> bool:
    """Verify an HMAC-SHA256 webhook signature.

    ``body`` must be the raw request bytes exactly as received; parsing and
    re-serializing the JSON changes the digest. Never raises: any malformed
    input is simply an invalid signature.
    """
    if not secret or not signature:
        return False
    if not signature.startswith(SIGNATURE_PREFIX):
        return False
    try:
        presented = signature.encode("ascii")
    except UnicodeEncodeError:
        return False
    expected = compute_signature(secret, body).encode("ascii")
    return hmac.compare_digest(expected, presented)


def is_authorized(sender: str | None, allow_list: Collection[str]) -> bool:
    """Whether ``sender`` may invoke the agent. Nobody is allowed by default."""
    if not sender:
        return False
    return sender in allow_list
