"""Security helpers: password hashing, verification and token generation.

The module provides thin wrappers around :class:`passlib.context.CryptContext`
for Argon2 hashing and :mod:`secrets` for opaque verification tokens.
Every call to :func:`hash_password` uses a fresh random salt, so two hashes
of the same password differ.
"""

from __future__ import annotations

import secrets
from functools import lru_cache
from typing import Optional

from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

VERIFICATION_TOKEN_BYTES = 32

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def _normalize_password(password: str) -> str:
    """Strip surrounding whitespace, matching how the schemas store input."""
    return password.strip()


def hash_password(password: str) -> str:
    """Return a salted one-way hash for ``password``.

    Errors raised by the hashing backend propagate to the caller.
    """
    if not password:
        raise ValueError("Cannot hash an empty password")
    return pwd_context.hash(_normalize_password(password))


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify that ``plain_password`` matches ``hashed_password``.

    Returns ``False`` when either side is empty, e.g. for accounts that
    only sign in through an external provider.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(_normalize_password(plain_password), hashed_password)
    except ValueError:
        # hash not recognised by any configured scheme
        return False


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(hash_password, password)


async def verify_password_async(plain_password: str, hashed_password: Optional[str]) -> bool:
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(secrets.token_hex(16))


async def verify_dummy_password_async(plain_password: str) -> bool:
    """Run a full verification against a throwaway hash.

    Used when there is no stored hash to check, so that a login for an
    unknown email costs as much as one with a wrong password.
    """
    return await run_in_threadpool(lambda: verify_password(plain_password, _dummy_hash()))


def generate_verification_token() -> str:
    """Return 32 random bytes as a 64 character hex string."""
    return secrets.token_hex(VERIFICATION_TOKEN_BYTES)
