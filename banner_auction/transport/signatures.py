"""HMAC-SHA256 signatures for GitHub webhook deliveries."""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

SIGNATURE_PREFIX = "sha256="


class SignatureError(ValueError):
    """Raised when a payload signature is invalid or malformed."""


def _mac(secret: str, payload: bytes) -> hmac.HMAC:
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(payload)
    return mac


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the ``X-Hub-Signature-256`` header value for ``payload``."""
    return SIGNATURE_PREFIX + _mac(secret, payload).finalize().hex()


def verify_signature(payload: bytes, signature_header: str, secret: str) -> None:
    if not secret:
        raise SignatureError("webhook secret not configured")
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        raise SignatureError("signature missing")
    try:
        received = bytes.fromhex(signature_header[len(SIGNATURE_PREFIX):])
    except ValueError as exc:
        raise SignatureError("signature is not hex encoded") from exc
    try:
        _mac(secret, payload).verify(received)
    except InvalidSignature as exc:
        raise SignatureError("signature verification failed") from exc
