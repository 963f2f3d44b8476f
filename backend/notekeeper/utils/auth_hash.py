"""Password hashing helpers using passlib.

``PasswordHasher`` wraps a passlib ``CryptContext`` and exposes the two calls
the credential store relies on:

- hash_password(plain: str) -> str
- verify_password(plain: str, hashed: str) -> bool

bcrypt is preferred (salted per hash). If the bcrypt backend cannot be loaded
or fails its self-test, pbkdf2_sha256 is used instead. The cost is set with
``rounds`` (see ``Settings.bcrypt_rounds``).
"""
from __future__ import annotations

import logging
from typing import Optional

from passlib.context import CryptContext

logger = logging.getLogger(__name__)


def build_context(rounds: Optional[int] = None) -> CryptContext:
    try:
        if rounds:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)
        else:
            ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
        # forces backend load, which is where broken bcrypt installs blow up
        ctx.hash("test")
        return ctx
    except Exception as exc:
        logger.warning(
            "bcrypt backend not available or failed to initialize; falling back to pbkdf2_sha256 (%s)",
            exc,
        )
    if rounds:
        return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto", pbkdf2_sha256__rounds=rounds)
    return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class PasswordHasher:
    def __init__(self, rounds: Optional[int] = None):
        self.context = build_context(rounds)

    def hash_password(self, plain: str) -> str:
        """Hash a plaintext password and return the encoded hash string."""
        if plain is None:
            raise ValueError("Password must not be None")
        return self.context.hash(plain)

    def verify_password(self, plain: str, hashed: str) -> bool:
        """Return True if ``plain`` matches ``hashed``; never raises."""
        if plain is None or hashed is None:
            return False
        try:
            return self.context.verify(plain, hashed)
        except (ValueError, TypeError):
            # unknown/garbled hash format
            return False

