import threading

import bcrypt

from ..config import settings

# bcrypt only looks at the first 72 bytes; newer releases raise past that.
_BCRYPT_MAX_BYTES = 72

_dummy_hash: bytes | None = None
_dummy_lock = threading.Lock()


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_encode(password), salt).decode("ascii")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Constant-time check of ``password`` against a stored bcrypt hash.

    A missing or malformed stored hash still costs one bcrypt round against a
    throwaway hash, so callers can use this for unknown accounts too.
    """
    if password_hash:
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
        except ValueError:
            # not a bcrypt hash (e.g. a legacy plaintext placeholder)
            pass
    bcrypt.checkpw(_encode(password), _get_dummy_hash())
    return False


def _get_dummy_hash() -> bytes:
    global _dummy_hash
    if _dummy_hash is None:
        with _dummy_lock:
            if _dummy_hash is None:
                _dummy_hash = bcrypt.hashpw(
                    b"not-a-real-password",
                    bcrypt.gensalt(rounds=settings.bcrypt_rounds),
                )
    return _dummy_hash
