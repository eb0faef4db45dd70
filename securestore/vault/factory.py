"""Store builders and the storage health probe."""
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StorageError
from .config import StoreConfig, load_config
from .file_store import EncryptedFileStore
from .keys import InMemoryKeyProvider, KeyringProvider
from .store import SecureStore

logger = logging.getLogger("securestore.vault")

HEALTH_PROBE_KEY = "health/probe"
HEALTH_PROBE_VALUE = b"ok"


def production_store(config: Optional[StoreConfig] = None) -> EncryptedFileStore:
    """Encrypted file store keyed from the OS secret store."""
    if config is None:
        config = load_config()
    logger.debug("Initializing encrypted store at %s", config.data_dir)
    return EncryptedFileStore(
        config.data_dir,
        KeyringProvider(config.keyring_service, config.keyring_account),
        cipher_backend=config.cipher_backend,
        fsync=config.fsync,
    )


def ephemeral_store(root: Union[str, Path], **kwargs) -> EncryptedFileStore:
    """Encrypted file store with a process-lifetime key (tests, scratch)."""
    return EncryptedFileStore(root, InMemoryKeyProvider(), **kwargs)


async def check_health(store: SecureStore) -> None:
    """Round-trip a probe value through ``store`` and clean it up.

    Raises:
        StorageError: If any step fails or the value does not round-trip.
    """
    await store.put(HEALTH_PROBE_KEY, HEALTH_PROBE_VALUE)
    try:
        value = await store.get(HEALTH_PROBE_KEY)
    finally:
        await store.delete(HEALTH_PROBE_KEY)
    if value != HEALTH_PROBE_VALUE:
        raise StorageError("storage round-trip failed")
    logger.debug("Storage health check passed for %r", store)
