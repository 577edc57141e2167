"""Unit tests for auth/passwords.py -- bcrypt hashing and verification.

Covers:
- hash_password() produces a salted bcrypt digest (two hashes of one password differ)
- verify_password() accepts the right password and rejects the wrong one
- verify_password() returns False (not raises) on a corrupt digest
- passwords over 72 UTF-8 bytes are refused, not truncated
"""

import pytest

from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, exceeds_password_limit, hash_password, verify_password


def test_hash_is_bcrypt_and_salted():
    first = hash_password("secret1")
    second = hash_password("secret1")
    assert first.startswith("$2")
    assert first != second
    assert "secret1" not in first


def test_verify_round_trip():
    digest = hash_password("secret1")
    assert verify_password("secret1", digest) is True
    assert verify_password("secret2", digest) is False


def test_verify_is_case_sensitive():
    digest = hash_password("Secret1")
    assert verify_password("secret1", digest) is False


def test_verify_corrupt_digest_returns_false():
    """A malformed digest is a negative outcome, never an exception."""
    assert verify_password("secret1", "not-a-bcrypt-hash") is False
    assert verify_password("secret1", "") is False


def test_dummy_hash_matches_nothing_plausible():
    assert verify_password("", DUMMY_HASH) is False
    assert verify_password("password", DUMMY_HASH) is False


def test_over_limit_password_refused():
    """bcrypt reads 72 bytes; longer input is refused rather than cut."""
    with pytest.raises(ValueError):
        hash_password("é" * 36 + "A")
    assert exceeds_password_limit("é" * 36) is False
    assert exceeds_password_limit("é" * 36 + "A") is True


def test_over_limit_password_never_matches():
    digest = hash_password("x" * MAX_PASSWORD_BYTES)
    assert verify_password("x" * MAX_PASSWORD_BYTES, digest) is True
    assert verify_password("x" * MAX_PASSWORD_BYTES + "y", digest) is False
