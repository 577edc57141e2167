"""
auth/passwords.py -- Password hashing (bcrypt, direct usage, no passlib wrapper).

bcrypt is slow by design and embeds its salt and cost factor in the digest, so
verify_password() needs nothing but the stored string. Using bcrypt directly
rather than passlib[bcrypt] because passlib's wrap-bug detection builds a
password longer than 72 bytes, which bcrypt 4.x rejects.

Length limit:
  bcrypt only reads the first 72 bytes of its input. Longer passwords are
  refused, never truncated: two passwords sharing a 72-byte prefix must not
  hash alike. hash_password() raises ValueError; the services check
  exceeds_password_limit() first and answer with their own error.

A mismatch is a plain False. Any failure inside checkpw (e.g. a corrupt
digest) is also False -- a caller must not be able to tell "wrong password"
from "unreadable hash" by behaviour.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


def exceeds_password_limit(plain: str) -> bool:
    """True if ``plain`` is longer than bcrypt's 72-byte input once UTF-8 encoded."""
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises ValueError for a password over MAX_PASSWORD_BYTES.
    """
    if exceeds_password_limit(plain):
        raise ValueError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A password over the byte limit never matches.
    """
    if exceeds_password_limit(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Login runs verify_password() against this when
# the email is unknown, so response time does not reveal account existence.
DUMMY_HASH: str = hash_password("backoffice_timing_dummy")
