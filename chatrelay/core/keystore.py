"""Encrypted credential storage and decryption.

Credentials are stored encrypted per (user, provider). The relay only reads
them: lookup returns the stored blob, the keystore turns it into plaintext
for the lifetime of one request.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis
from redis import asyncio as aioredis
from nacl.encoding import Base64Encoder, RawEncoder
from nacl.exceptions import CryptoError
from nacl.hash import blake2b
from nacl.secret import SecretBox

from chatrelay.core.errors import DecryptionError

logger = logging.getLogger(__name__)


class Keystore(ABC):
    """Turns a stored credential blob into plaintext."""

    @abstractmethod
    def decrypt(self, stored_blob: str) -> str:
        """Decrypt a stored blob.

        Raises:
            DecryptionError: If the blob is malformed or corrupt
        """
        pass


class SecretBoxKeystore(Keystore):
    """Keystore backed by an XSalsa20-Poly1305 secret box.

    Blobs are base64 of nonce + ciphertext, as produced by ``encrypt``.
    """

    def __init__(self, secret: str):
        """
        Args:
            secret: Keystore secret; a 32-byte key is derived from it
        """
        if not secret:
            raise ValueError("Keystore secret must not be empty")
        key = blake2b(secret.encode(), digest_size=SecretBox.KEY_SIZE, encoder=RawEncoder)
        self._box = SecretBox(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a credential for storage."""
        return self._box.encrypt(plaintext.encode(), encoder=Base64Encoder).decode()

    def decrypt(self, stored_blob: str) -> str:
        try:
            plaintext = self._box.decrypt(stored_blob.encode(), encoder=Base64Encoder)
            return plaintext.decode("utf-8")
        except (CryptoError, ValueError, TypeError) as e:
            raise DecryptionError(f"Stored credential could not be decrypted: {type(e).__name__}") from e


class CredentialStore(ABC):
    """Read-only view of users' encrypted provider credentials.

    Lookups are awaited inside the relay, so implementations must not block
    the event loop.
    """

    @abstractmethod
    async def get_encrypted_key(self, user_id: str, provider: str) -> Optional[str]:
        """Return the stored blob for (user, provider), or None."""
        pass

    async def ping(self) -> bool:
        """Check the backing store is reachable."""
        return True

    async def close(self) -> None:
        """Release connections held by the store."""
        pass


class InMemoryCredentialStore(CredentialStore):
    """Dictionary-backed store, used for development and tests."""

    def __init__(self, blobs: Optional[Dict[Tuple[str, str], str]] = None):
        self._blobs: Dict[Tuple[str, str], str] = dict(blobs or {})

    def put(self, user_id: str, provider: str, stored_blob: str) -> None:
        self._blobs[(user_id, provider)] = stored_blob

    async def get_encrypted_key(self, user_id: str, provider: str) -> Optional[str]:
        return self._blobs.get((user_id, provider))


class RedisCredentialStore(CredentialStore):
    """Redis-backed credential store.

    Keys are ``{prefix}:apikey:{user_id}:{provider}``. An unreachable or slow
    Redis degrades to "no credential", which surfaces as a credential-missing
    error. Socket timeouts bound every lookup.
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "chatrelay",
        socket_timeout_s: float = 2.0,
    ):
        """
        Args:
            redis_url: Redis connection URL
            key_prefix: Prefix for credential keys
            socket_timeout_s: Connect and read timeout for each Redis call
        """
        self.key_prefix = key_prefix
        try:
            self.client = aioredis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout_s,
                socket_connect_timeout=socket_timeout_s,
            )
            self.enabled = True
        except Exception as e:
            self.client = None
            self.enabled = False
            logger.warning(f"Credential store configuration invalid (graceful degradation): {e}", exc_info=True)

    def _make_key(self, user_id: str, provider: str) -> str:
        return f"{self.key_prefix}:apikey:{user_id}:{provider}"

    async def ping(self) -> bool:
        if not self.enabled or not self.client:
            return False
        try:
            await self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Credential store unreachable (lookups will report missing keys): {e}")
            return False
        logger.info("Credential store connected to Redis")
        return True

    async def get_encrypted_key(self, user_id: str, provider: str) -> Optional[str]:
        if not self.enabled or not self.client:
            return None
        try:
            return await self.client.get(self._make_key(user_id, provider))
        except redis.RedisError as e:
            logger.warning(f"Credential lookup failed for provider {provider}: {e}")
            return None

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
