"""Vault — Encrypted file storage keyed from the OS secret store.

Security Note (Threat Model):
    Plaintext exists only in process memory while a value is in use.
    The data key is cached in memory for the provider's lifetime; a
    memory dump of the process can expose it. The files on disk hold
    only AEAD ciphertext and cannot be read or silently altered
    without the key.
"""

from .config import StoreConfig, load_config, default_data_dir
from .crypto import (
    KeyMaterial,
    StoredBlob,
    encrypt,
    decrypt,
    generate_master_key,
)
from .keys import KeyProvider, InMemoryKeyProvider, KeyringProvider
from .store import SecureStore, InMemorySecureStore
from .file_store import EncryptedFileStore
from .factory import production_store, ephemeral_store, check_health

__all__ = [
    "StoreConfig",
    "load_config",
    "default_data_dir",
    "KeyMaterial",
    "StoredBlob",
    "encrypt",
    "decrypt",
    "generate_master_key",
    "KeyProvider",
    "InMemoryKeyProvider",
    "KeyringProvider",
    "SecureStore",
    "InMemorySecureStore",
    "EncryptedFileStore",
    "production_store",
    "ephemeral_store",
    "check_health",
]
