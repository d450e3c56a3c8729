"""Unit tests for auth/passwords.py -- bcrypt hashing and never-raising verification.

Covers:
- Each hash call uses a fresh salt
- verify_password() accepts the right password and rejects a wrong one
- Malformed, empty, and None hashes return False instead of raising
- The configured cost factor is embedded in the hash
"""

from auth.passwords import burn_verify, hash_password, verify_password


def test_hash_is_salted_per_call():
    first = hash_password("correct horse")
    second = hash_password("correct horse")
    assert first != second
    assert verify_password("correct horse", first)
    assert verify_password("correct horse", second)


def test_verify_rejects_wrong_password():
    hashed = hash_password("pw1")
    assert verify_password("pw1", hashed) is True
    assert verify_password("pw2", hashed) is False


def test_hash_never_contains_plaintext():
    assert "s3cret-value" not in hash_password("s3cret-value")


def test_explicit_rounds_are_embedded_in_hash():
    assert hash_password("pw", rounds=5).startswith("$2b$05$")


def test_configured_rounds_used_by_default():
    # conftest sets BCRYPT_ROUNDS=4
    assert hash_password("pw").startswith("$2b$04$")


def test_malformed_hash_returns_false():
    assert verify_password("pw", "not-a-bcrypt-hash") is False
    assert verify_password("pw", "$2b$04$truncated") is False


def test_empty_and_none_hash_return_false():
    assert verify_password("pw", "") is False
    assert verify_password("pw", None) is False


def test_burn_verify_does_not_raise():
    burn_verify("anything")


def test_verify_rejects_password_over_bcrypt_limit():
    hashed = hash_password("p" * 72)
    assert verify_password("p" * 72, hashed) is True
    assert verify_password("p" * 73, hashed) is False
