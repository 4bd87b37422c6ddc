"""Credential hashing (bcrypt). Hashing runs off the event loop."""

import asyncio

import bcrypt

from vaultdoc.config import settings


async def hash_secret(plaintext: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = await asyncio.to_thread(bcrypt.hashpw, plaintext.encode(), salt)
    return hashed.decode()


async def check_secret(plaintext: str, hashed: str | None) -> bool:
    """Compare a plaintext against a stored hash. A missing hash never matches."""
    if not plaintext or not hashed:
        return False
    try:
        return await asyncio.to_thread(bcrypt.checkpw, plaintext.encode(), hashed.encode())
    except ValueError:
        # Stored value is not a bcrypt hash
        return False
