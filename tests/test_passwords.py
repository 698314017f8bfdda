"""
Tests for secret generation.
"""

import string

import pytest

from kcdeploy.utils.passwords import generate_secret, generate_secure_password


def test_generate_secret_is_32_alphanumeric_characters():
    secret = generate_secret()
    assert len(secret) == 32
    assert secret.isalnum()
    assert set(secret) <= set(string.ascii_letters + string.digits)


def test_generate_secret_differs_between_calls():
    secrets = {generate_secret() for _ in range(20)}
    assert len(secrets) == 20


def test_generate_secret_custom_length():
    assert len(generate_secret(8)) == 8


def test_generate_secret_rejects_non_positive_length():
    with pytest.raises(ValueError):
        generate_secret(0)


def test_generate_secure_password_contains_every_character_class():
    """Test that the admin password satisfies mixed case and digit requirements."""
    for _ in range(10):
        password = generate_secure_password()
        assert len(password) == 32
        assert password.isalnum()
        assert sum(c.isupper() for c in password) >= 3
        assert sum(c.islower() for c in password) >= 3
        assert sum(c.isdigit() for c in password) >= 3


def test_generate_secure_password_rejects_impossible_requirements():
    with pytest.raises(ValueError, match="exceed total length"):
        generate_secure_password(min_uppercase=10, min_lowercase=10, min_digits=10, total_length=20)
