"""Password hashing.

Uses passlib's bcrypt scheme; plain passwords are never stored.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__min_rounds=12)


def hash_password(password: str) -> str:
    """Hash a plain password using bcrypt.

    Example:
        >>> hash_password("correct horse").startswith("$2b$")
        True
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain password against a stored hash.

    A stored value passlib cannot identify counts as a mismatch.
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def password_needs_rehash(hashed_password: str) -> bool:
    """True when the stored hash uses weaker settings than pwd_context."""
    return pwd_context.needs_update(hashed_password)
