"""
auth/passwords.py -- bcrypt password hashing and verification.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection hashes a password longer than 72 bytes, which bcrypt 4.x rejects
with an explicit error.

The cost factor is fixed at 10 so stored hashes stay interoperable with other
bcrypt-family verifiers (the $2b$10$ prefix).
"""

from __future__ import annotations

import bcrypt

BCRYPT_ROUNDS = 10

# bcrypt only ever reads the first 72 bytes. Older releases truncated silently,
# bcrypt 5 raises instead, so the cut is made here for both hash and verify.
_MAX_PASSWORD_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_PASSWORD_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    A fresh random salt is generated on every call, so hashing the same
    password twice yields two different strings.
    """
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed or empty hash returns False instead of raising.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at import so the first login attempt is not measurably slower
# than later ones. AuthService.login verifies against it when the email is
# unknown, so the response time does not reveal whether the account exists.
DUMMY_HASH: str = hash_password("authority_timing_dummy")
