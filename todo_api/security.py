from functools import lru_cache

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt only looks at the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72


def _truncate(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) <= BCRYPT_MAX_BYTES:
        return password
    return encoded[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain-text password against a hashed password.
    A stored value that is not a recognizable hash never verifies.
    """
    try:
        return pwd_context.verify(_truncate(plain_password), hashed_password)
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """
    Hashes a plain-text password. The salt is random, so hashing the same
    password twice gives two different strings.
    """
    return pwd_context.hash(_truncate(password))


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return get_password_hash("dummy-password-for-timing")


def dummy_verify(plain_password: str) -> bool:
    """
    Burns one bcrypt verification so a login for an unknown email takes about
    as long as one with a wrong password. Always returns False.
    """
    verify_password(plain_password, _dummy_hash())
    return False
