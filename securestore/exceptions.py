"""
Secure Store Errors — exception taxonomy shared by every storage layer.

Security Note:
    Error messages carry logical keys and reasons only. Never put key
    material, nonces, ciphertext or plaintext into an exception.
"""


class SecureStoreError(Exception):
    """Base class for SecureStore failures."""


class NotFound(SecureStoreError):
    """Logical key was never written (or was deleted)."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"entry not found for key: {key}")


class StorageError(SecureStoreError):
    """I/O, serialization or cryptographic failure."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"storage failure: {reason}")


class InvalidRecord(StorageError):
    """Record fields were rejected (reserved field, wrong type or value)."""

    def __str__(self) -> str:
        return f"invalid record: {self.reason}"


class RecordNotFound(NotFound):
    """Record id is not present in a repository collection."""

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(str(record_id))

    def __str__(self) -> str:
        return f"record not found: {self.record_id}"


class KeyProviderError(Exception):
    """Base class for key material failures."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class BackendUnavailable(KeyProviderError):
    """The OS secret store cannot be reached."""

    def __str__(self) -> str:
        return f"keyring error: {self.reason}"


class CorruptKey(KeyProviderError):
    """Stored secret does not decode to a 32-byte key."""

    def __str__(self) -> str:
        return f"decode error: {self.reason}"


class KeyGenerationFailed(KeyProviderError):
    """CSPRNG could not produce key bytes."""

    def __str__(self) -> str:
        return f"generation error: {self.reason}"
