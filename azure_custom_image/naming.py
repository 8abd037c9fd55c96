"""Random resource names and VM admin credentials"""

import random
import secrets
import string

_NAME_ALPHABET = string.ascii_lowercase + string.digits
_PASSWORD_SPECIALS = "!@#$%^&*-_"


def random_name(prefix: str, length: int = 8) -> str:
    """Return prefix followed by a random lowercase alphanumeric suffix.

    The result is safe for storage account names (lowercase, no special
    characters) as long as the prefix is.
    """
    suffix = ''.join(random.choices(_NAME_ALPHABET, k=length))
    return f"{prefix}{suffix}"


def create_username() -> str:
    return random_name("tirekicker")


def create_password(length: int = 16) -> str:
    """Generate a password that satisfies the Azure VM complexity rules"""
    if length < 12:
        raise ValueError("Azure VM passwords must be at least 12 characters")

    # One of each required class, the rest from the full alphabet
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(_PASSWORD_SPECIALS),
    ]
    alphabet = string.ascii_letters + string.digits + _PASSWORD_SPECIALS
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    random.SystemRandom().shuffle(chars)
    return ''.join(chars)
