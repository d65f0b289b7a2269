"""
Password hashing with bcrypt.
"""

import bcrypt

BCRYPT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes of the secret
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash ``password`` with a fresh salt."""
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check ``plain_password`` against a stored hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def needs_rehash(hashed_password: str, rounds: int = BCRYPT_ROUNDS) -> bool:
    """
    True when a stored hash was made with a different cost factor.

    Hashes look like ``$2b$12$<salt+digest>``; the second field is the cost.
    """
    parts = hashed_password.split("$")
    if len(parts) < 4 or not parts[2].isdigit():
        return True
    return int(parts[2]) != rounds
