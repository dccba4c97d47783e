import hashlib
import secrets
from functools import lru_cache

import bcrypt

from accounts.config import settings


def hash_password(password: str, cost: int | None = None) -> str:
    rounds = cost if cost is not None else settings.bcrypt_cost
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed hash or a password bcrypt refuses (over 72 bytes).
        return False


@lru_cache(maxsize=4)
def _dummy_hash(cost: int) -> str:
    return hash_password(secrets.token_hex(16), cost=cost)


def burn_password_check(plain: str, cost: int | None = None) -> None:
    """Spend the same bcrypt work as a real check when there is no user."""
    verify_password(plain, _dummy_hash(cost if cost is not None else settings.bcrypt_cost))


def generate_token(num_bytes: int | None = None) -> str:
    """Return ``num_bytes`` of CSPRNG output, hex encoded (2 chars per byte)."""
    length = num_bytes if num_bytes is not None else settings.token_bytes
    return secrets.token_hex(length)


def hash_token(token: str) -> str:
    """SHA-256 of the raw token as 64 hex characters. Only this is stored."""
    return hashlib.sha256(token.encode()).hexdigest()
