"""Secure Store.

Local encrypted key/value storage and record repositories on top of it.
"""
from .version import __version__
from .exceptions import (
    SecureStoreError,
    NotFound,
    StorageError,
    RecordNotFound,
    InvalidRecord,
    KeyProviderError,
    BackendUnavailable,
    CorruptKey,
    KeyGenerationFailed,
)
from .vault import (
    SecureStore,
    EncryptedFileStore,
    InMemorySecureStore,
    KeyringProvider,
    InMemoryKeyProvider,
    StoreConfig,
    production_store,
    ephemeral_store,
)
from .records import Record, RecordRepository, Task, TaskStatus, TaskRepository

__all__ = (
    "__version__",
    "SecureStoreError",
    "NotFound",
    "StorageError",
    "RecordNotFound",
    "InvalidRecord",
    "KeyProviderError",
    "BackendUnavailable",
    "CorruptKey",
    "KeyGenerationFailed",
    "SecureStore",
    "EncryptedFileStore",
    "InMemorySecureStore",
    "KeyringProvider",
    "InMemoryKeyProvider",
    "StoreConfig",
    "production_store",
    "ephemeral_store",
    "Record",
    "RecordRepository",
    "Task",
    "TaskStatus",
    "TaskRepository",
)
