from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets
import uuid

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app


def generate_id() -> str:
    return uuid.uuid4().hex


def generate_token(num_bytes: int = 18) -> str:
    """Opaque bearer token for organizers, participants and invitation links."""
    return secrets.token_urlsafe(num_bytes)


def generate_game_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def tokens_match(given: str | None, expected: str | None) -> bool:
    if not given or not expected:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


# ---------------------------------------------------------------------------
# Assignment encryption-at-rest
#
# Receivers are never stored in plaintext; each giver row carries a Fernet
# token of its receiver's participant id.
#
# NOTE: anyone holding ASSIGNMENT_ENC_KEY or SECRET_KEY can still decrypt.
# This keeps assignments out of casual DB inspection and backups.
# ---------------------------------------------------------------------------


def _assignment_fernet() -> Fernet:
    """Returns a Fernet instance keyed by ASSIGNMENT_ENC_KEY or derived from SECRET_KEY."""
    explicit = (current_app.config.get("ASSIGNMENT_ENC_KEY") or os.environ.get("ASSIGNMENT_ENC_KEY") or "").strip()
    if explicit:
        # Expect a urlsafe base64-encoded 32-byte key.
        return Fernet(explicit.encode("utf-8"))

    # Stable across restarts as long as SECRET_KEY is.
    secret = (current_app.config.get("SECRET_KEY") or "").encode("utf-8")
    digest = hashlib.sha256(b"secretsanta-assignments|" + secret).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_assignment_recipient(receiver_id: str) -> str:
    """Encrypt receiver_id -> ciphertext token (string)."""
    token = _assignment_fernet().encrypt(receiver_id.encode("utf-8"))
    return token.decode("utf-8")


def decrypt_assignment_recipient(token: str) -> str:
    """Decrypt ciphertext token -> receiver_id. Raises ValueError on failure."""
    try:
        raw = _assignment_fernet().decrypt(token.encode("utf-8"))
        return raw.decode("utf-8")
    except (InvalidToken, ValueError, TypeError) as e:
        raise ValueError("Invalid assignment token") from e
