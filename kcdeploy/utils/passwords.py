"""
Secret generation for database and admin credentials.

All secrets come from the secrets module (OS CSPRNG) and use an alphanumeric
alphabet, so they can be written unquoted into env files and unit files.
"""

import secrets
import string

SECRET_LENGTH = 32
ALPHANUMERIC = string.ascii_letters + string.digits


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """
    Generate a cryptographically secure alphanumeric token.

    Args:
        length: Number of characters (default: 32)

    Returns:
        A random string drawn from [A-Za-z0-9]

    Example:
        >>> len(generate_secret())
        32
    """
    if length < 1:
        raise ValueError(f"Secret length must be positive, got {length}")
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def generate_secure_password(
    min_uppercase: int = 3,
    min_lowercase: int = 3,
    min_digits: int = 3,
    total_length: int = SECRET_LENGTH,
) -> str:
    """
    Generate an alphanumeric password containing a minimum of each character class.

    Used for the admin password, which Keycloak's default password policy may
    check for mixed case and digits.

    Args:
        min_uppercase: Minimum number of uppercase letters
        min_lowercase: Minimum number of lowercase letters
        min_digits: Minimum number of digits
        total_length: Total length of the generated password

    Returns:
        A cryptographically secure password meeting the specified requirements

    Raises:
        ValueError: If the minimum character requirements exceed the total length
    """
    min_required = min_uppercase + min_lowercase + min_digits
    if min_required > total_length:
        raise ValueError(f"Minimum character requirements ({min_required}) exceed total length ({total_length})")

    password_chars = []
    password_chars.extend(secrets.choice(string.ascii_uppercase) for _ in range(min_uppercase))
    password_chars.extend(secrets.choice(string.ascii_lowercase) for _ in range(min_lowercase))
    password_chars.extend(secrets.choice(string.digits) for _ in range(min_digits))
    password_chars.extend(secrets.choice(ALPHANUMERIC) for _ in range(total_length - len(password_chars)))

    # Shuffle so the guaranteed characters are not at predictable positions
    secrets.SystemRandom().shuffle(password_chars)

    return "".join(password_chars)
