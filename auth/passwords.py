"""
auth/passwords.py -- Password hashing and verification.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). Its cost factor makes
  brute-force expensive, which is what low-entropy secrets like passwords
  need. Every hash gets a fresh salt from bcrypt.gensalt(), so hashing the
  same password twice yields two different strings.

  verify_password() never raises. A corrupt or empty stored hash is treated
  as "does not match" -- that is the only safe default for an auth check.

  _DUMMY_HASH enables timing equalization in UserDirectory.authenticate():
  bcrypt runs whether or not the username exists, so response time does not
  reveal which usernames are registered.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

import bcrypt

from core.config import get_settings

logger = logging.getLogger("userdesk.auth")

# bcrypt only reads the first 72 bytes of its input; bcrypt 5 rejects longer ones.
MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    rounds defaults to Settings.bcrypt_rounds. Callers must reject passwords
    longer than MAX_PASSWORD_BYTES first; bcrypt raises ValueError on them.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. Malformed hashes raise
    ValueError inside bcrypt; those are logged and reported as a mismatch.
    A password over MAX_PASSWORD_BYTES can never have been stored, so it
    is a mismatch too.
    """
    if not hashed or password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (TypeError, ValueError):
        logger.warning("Stored password hash could not be parsed; treating as mismatch")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("userdesk_timing_dummy")


def burn_verify(plain: str) -> None:
    """Run a full bcrypt verification against a throwaway hash.

    Called when the username is unknown so that path costs the same as a
    wrong-password check.
    """
    verify_password(plain, _DUMMY_HASH)
