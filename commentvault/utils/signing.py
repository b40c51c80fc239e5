"""HMAC signing for inbound event requests."""

import hashlib
import hmac


def sign(secret: str, data: str | bytes) -> str:
    """Create a hex-encoded HMAC-SHA256 signature.

    Raises:
        ValueError: If the secret is empty
    """
    if not secret:
        raise ValueError("No signing key available")

    if isinstance(data, str):
        data = data.encode("utf-8")

    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).hexdigest()


def validate_signature(secret: str, data: str | bytes, signature: str | None) -> bool:
    """Check a signature in constant time."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(secret, data), signature)
