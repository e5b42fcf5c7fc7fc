from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import ErrorKind, StoreError


# Token layout (urlsafe base64, unpadded): version byte | 12-byte nonce | AES-GCM ciphertext+tag.
# The table name is the associated data, so a token only opens against the table that issued it.
_VERSION = b"\x01"
_NONCE_LEN = 12
_TAG_LEN = 16

# Used only outside production; Settings.require_in_production() insists on a real key.
_DEV_SECRET = "entity-store-dev-token-key"


def _invalid_token(cause: Exception | None = None) -> StoreError:
    return StoreError(
        message="Invalid nextToken",
        kind=ErrorKind.VALIDATION,
        operation="Scan",
        cause=cause,
    )


def _cipher(secret: str | None) -> AESGCM:
    return AESGCM(hashlib.sha256((secret or _DEV_SECRET).encode("utf-8")).digest())


def encode_next_token(
    last_evaluated_key: dict[str, Any] | None,
    *,
    table_name: str,
    secret: str | None = None,
) -> str | None:
    if not last_evaluated_key:
        return None

    body = json.dumps(last_evaluated_key, separators=(",", ":"), sort_keys=True).encode("utf-8")
    nonce = os.urandom(_NONCE_LEN)
    sealed = _cipher(secret).encrypt(nonce, body, table_name.encode("utf-8"))
    return base64.urlsafe_b64encode(_VERSION + nonce + sealed).rstrip(b"=").decode("ascii")


def decode_next_token(
    next_token: str | None,
    *,
    table_name: str,
    secret: str | None = None,
) -> dict[str, Any] | None:
    """Open a token issued by encode_next_token for the same table and secret."""
    if not next_token:
        return None

    try:
        blob = base64.urlsafe_b64decode(next_token + "=" * (-len(next_token) % 4))
    except (binascii.Error, ValueError) as e:
        raise _invalid_token(e) from e

    if len(blob) <= 1 + _NONCE_LEN + _TAG_LEN or blob[:1] != _VERSION:
        raise _invalid_token()

    nonce, sealed = blob[1 : 1 + _NONCE_LEN], blob[1 + _NONCE_LEN :]
    try:
        body = _cipher(secret).decrypt(nonce, sealed, table_name.encode("utf-8"))
        lek = json.loads(body)
    except (InvalidTag, ValueError) as e:
        raise _invalid_token(e) from e

    if not isinstance(lek, dict) or not lek:
        raise _invalid_token()
    return lek
