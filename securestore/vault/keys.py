"""
Vault Key Providers — supply the 256-bit data key used by the file store.

- ``InMemoryKeyProvider``: volatile single-slot cache (tests, ephemeral sessions).
- ``KeyringProvider``: durable key kept in the OS secret store through ``keyring``.

Security Note:
    Never log key material. Only log key ids and (service, account) pairs.
"""
import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import keyring
from keyring.errors import KeyringError

from ..exceptions import BackendUnavailable
from .crypto import (
    DEFAULT_KEY_ID,
    KeyMaterial,
    decode_key,
    encode_key,
    generate_key_material,
)

logger = logging.getLogger("securestore.vault")

# One generation lock per (service, account) shared by every provider
# instance in the process.
_GENERATION_LOCKS: dict[tuple[str, str], threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


def _generation_lock(service: str, account: str) -> threading.Lock:
    with _REGISTRY_LOCK:
        return _GENERATION_LOCKS.setdefault((service, account), threading.Lock())


class KeyProvider(ABC):
    """Contract for anything that hands out the data key."""

    @abstractmethod
    async def get_or_create(self) -> KeyMaterial:
        """Return the key, creating and persisting it on first use.

        Raises:
            KeyProviderError: BackendUnavailable, CorruptKey or
                KeyGenerationFailed.
        """


class InMemoryKeyProvider(KeyProvider):
    """Process-local key held in a lock-guarded single slot.

    The first call generates the key; later calls return the same
    material until :meth:`reset` is called. Nothing touches disk.
    """

    def __init__(self, key_id: str = DEFAULT_KEY_ID):
        self._key_id = key_id
        self._lock = threading.Lock()
        self._material: Optional[KeyMaterial] = None

    async def get_or_create(self) -> KeyMaterial:
        with self._lock:
            if self._material is None:
                self._material = generate_key_material(self._key_id)
                logger.debug("Generated volatile key id=%s", self._key_id)
            return self._material

    def reset(self) -> None:
        """Drop the cached key; the next call generates a new one."""
        with self._lock:
            self._material = None


class KeyringProvider(KeyProvider):
    """Key persisted in the OS secret store under ``(service, account)``.

    The stored value is base64 of the 32 raw key bytes. First-time
    creation is single-flight within the process: concurrent callers
    wait on the same lock and only one of them generates and writes.
    """

    def __init__(
        self,
        service: str,
        account: str,
        key_id: str = DEFAULT_KEY_ID,
    ):
        self._service = service
        self._account = account
        self._key_id = key_id
        self._lock = asyncio.Lock()
        self._material: Optional[KeyMaterial] = None

    @property
    def service(self) -> str:
        return self._service

    @property
    def account(self) -> str:
        return self._account

    # ------------------------------------------------------------------
    # Keyring helpers (blocking; run in a worker thread)
    # ------------------------------------------------------------------

    def _read_secret(self) -> Optional[str]:
        try:
            return keyring.get_password(self._service, self._account)
        except KeyringError as err:
            raise BackendUnavailable(str(err)) from err

    def _write_secret(self, secret: str) -> None:
        try:
            keyring.set_password(self._service, self._account, secret)
        except KeyringError as err:
            raise BackendUnavailable(str(err)) from err

    def _load_or_generate(self) -> KeyMaterial:
        with _generation_lock(self._service, self._account):
            secret = self._read_secret()
            if secret is not None:
                return decode_key(secret, self._key_id)

            material = generate_key_material(self._key_id)
            self._write_secret(encode_key(material))
            logger.info(
                "Created data key id=%s in keyring service=%s account=%s",
                self._key_id, self._service, self._account,
            )
            # Read back: if another process wrote in between, its key wins.
            stored = self._read_secret()
            if stored is None:
                raise BackendUnavailable(
                    "key was written but could not be read back"
                )
            return decode_key(stored, self._key_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_or_create(self) -> KeyMaterial:
        if self._material is not None:
            return self._material
        async with self._lock:
            if self._material is None:
                self._material = await asyncio.to_thread(self._load_or_generate)
                logger.debug(
                    "Loaded data key id=%s from keyring service=%s",
                    self._key_id, self._service,
                )
            return self._material
