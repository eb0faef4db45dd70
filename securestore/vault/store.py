"""
SecureStore — the put/get/delete contract every encrypted backend implements.

Consumers (record repositories, conversation state, credentials) only
ever see logical string keys and plaintext bytes; keys, nonces and the
on-disk layout stay behind this interface.
"""
import asyncio
import weakref
import threading
from abc import ABC, abstractmethod

from ..exceptions import NotFound


class SecureStore(ABC):
    """Encrypted-at-rest key/value store."""

    def __init__(self):
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @abstractmethod
    async def put(self, key: str, value: bytes) -> None:
        """Persist ``value`` under ``key``, replacing any previous value.

        Raises:
            StorageError: On any I/O, key or encryption failure.
        """

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the plaintext stored under ``key``.

        Raises:
            NotFound: If ``key`` was never written.
            StorageError: If the value cannot be read or authenticated.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting an absent key succeeds."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a value is stored under ``key``."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List logical keys currently stored."""

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock guarding read-modify-write cycles on ``key``.

        Locks are owned by this store instance, so they serialize writers
        inside one process that share the instance. Other instances or
        processes writing the same key are not coordinated.

        The registry holds locks weakly: a lock lives as long as someone
        holds or waits on it (``async with store.lock(key)`` keeps it
        referenced), then its entry is dropped.
        """
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock


# ---------------------------------------------------------------------------
# In-memory test double
# ---------------------------------------------------------------------------

MASK_BYTE = 0xA5


def _mask(data: bytes) -> bytes:
    """XOR every byte with MASK_BYTE (applying twice restores the input)."""
    return bytes(b ^ MASK_BYTE for b in data)


class InMemorySecureStore(SecureStore):
    """Dict-backed store for tests and smoke runs.

    Values are XOR-masked so plaintext is not kept verbatim, but this is
    NOT encryption. Production code uses ``EncryptedFileStore``.
    """

    def __init__(self):
        super().__init__()
        self._data: dict[str, bytes] = {}
        self._guard = threading.Lock()

    async def put(self, key: str, value: bytes) -> None:
        with self._guard:
            self._data[key] = _mask(value)

    async def get(self, key: str) -> bytes:
        with self._guard:
            masked = self._data.get(key)
        if masked is None:
            raise NotFound(key)
        return _mask(masked)

    async def delete(self, key: str) -> None:
        with self._guard:
            self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        with self._guard:
            return key in self._data

    async def keys(self) -> list[str]:
        with self._guard:
            return sorted(self._data)
