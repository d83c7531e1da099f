"""Signature utilities based on Ed25519 public key cryptography."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .canonical_json import canonical_dumps


class SignatureError(ValueError):
    """Raised when a payload signature is invalid or malformed."""


def load_public_key(pem: str) -> Ed25519PublicKey:
    if not pem:
        raise SignatureError("public key missing")
    try:
        key = serialization.load_pem_public_key(pem.encode("utf-8"))
    except ValueError as exc:
        raise SignatureError("public key is not valid PEM") from exc
    if not isinstance(key, Ed25519PublicKey):
        raise SignatureError("public key is not an Ed25519 key")
    return key


def verify_signature(payload: Any, signature_b64: str, public_key: Ed25519PublicKey) -> None:
    """Validate an ed25519 signature over the canonical JSON payload."""
    if not signature_b64:
        raise SignatureError("signature missing")
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureError("signature is not base64") from exc
    try:
        public_key.verify(signature, canonical_dumps(payload))
    except InvalidSignature as exc:
        raise SignatureError("signature verification failed") from exc


def sign_payload(payload: Any, private_key: Ed25519PrivateKey) -> str:
    signature = private_key.sign(canonical_dumps(payload))
    return base64.b64encode(signature).decode("utf-8")
