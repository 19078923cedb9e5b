# auth.py
"""Password hashing and stateless signed session tokens."""
import time
from typing import Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from errors import Unauthenticated

ALGORITHM = "HS256"


def _pwd_context() -> CryptContext:
    # rounds are read per call so tests can lower them
    return CryptContext(schemes=["pbkdf2_sha256"],
                        pbkdf2_sha256__default_rounds=config.PASSWORD_HASH_ITERATIONS)


def hash_password(password: str) -> str:
    return _pwd_context().hash(password)


def verify_password(password: str, stored: str) -> bool:
    try:
        return _pwd_context().verify(password, stored)
    except (TypeError, ValueError):
        return False


class TokenSigner:
    """Issues and verifies HS256 JWTs whose ``sub`` is the user id."""

    def __init__(self, secret: Optional[str] = None, ttl_seconds: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        self.secret = secret or config.SECRET_KEY
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.SESSION_TTL_SECONDS
        self.clock = clock

    def issue(self, user_id: int) -> str:
        payload = {"sub": str(int(user_id)), "exp": int(self.clock()) + self.ttl_seconds}
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> int:
        if not token:
            raise Unauthenticated("Missing session token.")
        try:
            # expiry is checked against our own clock below
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM],
                                 options={"verify_exp": False})
            user_id, expires = int(payload["sub"]), int(payload["exp"])
        except (JWTError, KeyError, TypeError, ValueError):
            raise Unauthenticated("Invalid session token.")
        if expires < self.clock():
            raise Unauthenticated("Session expired.")
        return user_id
