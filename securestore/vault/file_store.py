"""
EncryptedFileStore — AEAD-encrypted, one-file-per-key SecureStore.

On-disk layout:
    <root>/<b64url(logical key)>   JSON {"nonce": ..., "ciphertext": ...}

Writes go through a temp file in the same directory followed by
``os.replace``, so readers see either the previous value or the new one,
never a partial file.

Security Note:
    Only logical keys are logged. Values, nonces and ciphertext are not.
"""
import os
import asyncio
import logging
import tempfile
import contextlib
from pathlib import Path
from typing import Union

from ..exceptions import KeyProviderError, NotFound, StorageError
from .crypto import (
    KeyMaterial,
    b64url_decode,
    b64url_encode,
    decrypt,
    dump_blob,
    encrypt,
    get_cipher_cls,
    load_blob,
)
from .keys import KeyProvider
from .store import SecureStore

logger = logging.getLogger("securestore.vault")

MAX_FILENAME_LENGTH = 255
# Temp names are ".tmp." + 8 random characters + ".tmp", whatever the target.
TMP_PREFIX = ".tmp."
TMP_SUFFIX = ".tmp"


def _fsync_dir(path: Path) -> None:
    if os.name == "nt":
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_bytes(path: Path, payload: bytes, *, fsync: bool = True) -> None:
    """Atomically replace ``path`` with ``payload`` (temp + fsync + replace).

    The temp file lives next to ``path`` under a short fixed prefix, so
    any name that fits the file system also fits as a target. It is
    removed on every exit path that did not rename it into place.
    """
    tmp_fd = None
    tmp_path = None
    try:
        tmp_fd, tmp_name = tempfile.mkstemp(
            prefix=TMP_PREFIX, suffix=TMP_SUFFIX, dir=str(path.parent),
        )
        tmp_path = Path(tmp_name)
        handle = os.fdopen(tmp_fd, "wb")
        tmp_fd = None
        with handle:
            handle.write(payload)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
        if fsync:
            _fsync_dir(path.parent)
    finally:
        if tmp_fd is not None:
            with contextlib.suppress(OSError):
                os.close(tmp_fd)
        if tmp_path is not None:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()


class EncryptedFileStore(SecureStore):
    """SecureStore writing one encrypted file per logical key under ``root``.

    Args:
        root: Directory holding the encrypted files (created on first put).
        key_provider: Source of the data key.
        cipher_backend: ``aesgcm`` (default) or ``chacha20``.
        fsync: Sync file and directory after each write.
    """

    def __init__(
        self,
        root: Union[str, Path],
        key_provider: KeyProvider,
        *,
        cipher_backend: str = "aesgcm",
        fsync: bool = True,
    ):
        super().__init__()
        self._root = Path(root)
        self._key_provider = key_provider
        get_cipher_cls(cipher_backend)
        self._cipher_backend = cipher_backend
        self._fsync = fsync

    def __repr__(self) -> str:
        return (
            f"<EncryptedFileStore root={str(self._root)!r} "
            f"cipher={self._cipher_backend}>"
        )

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Path mapping
    # ------------------------------------------------------------------

    def path_for(self, key: str) -> Path:
        """Map a logical key to its file path inside ``root``.

        Raises:
            StorageError: If the key is empty or encodes to a name longer
                than the filesystem allows.
        """
        if not key:
            raise StorageError("logical key cannot be empty")
        name = b64url_encode(key.encode("utf-8"))
        if len(name) > MAX_FILENAME_LENGTH:
            raise StorageError(
                f"logical key too long: encodes to {len(name)} characters "
                f"(maximum {MAX_FILENAME_LENGTH})"
            )
        return self._root / name

    @staticmethod
    def key_for(name: str) -> str:
        """Inverse of :meth:`path_for` for a bare file name."""
        return b64url_decode(name).decode("utf-8")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _key_material(self) -> KeyMaterial:
        try:
            return await self._key_provider.get_or_create()
        except KeyProviderError as err:
            raise StorageError(f"key provider: {err}") from err

    def _write(self, path: Path, payload: bytes) -> None:
        try:
            self._root.mkdir(mode=0o700, parents=True, exist_ok=True)
            atomic_write_bytes(path, payload, fsync=self._fsync)
        except OSError as err:
            raise StorageError(str(err)) from err

    def _read(self, key: str, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise NotFound(key) from None
        except OSError as err:
            raise StorageError(str(err)) from err

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as err:
            raise StorageError(str(err)) from err

    def _list(self) -> list[str]:
        try:
            names = [p.name for p in self._root.iterdir() if p.is_file()]
        except FileNotFoundError:
            return []
        except OSError as err:
            raise StorageError(str(err)) from err
        keys = []
        for name in names:
            if name.startswith("."):
                continue  # temp files
            try:
                keys.append(self.key_for(name))
            except ValueError:
                logger.debug("Skipping foreign file in store root: %s", name)
        return sorted(keys)

    # ------------------------------------------------------------------
    # SecureStore API
    # ------------------------------------------------------------------

    async def put(self, key: str, value: bytes) -> None:
        path = self.path_for(key)
        material = await self._key_material()
        blob = encrypt(material, value, self._cipher_backend)
        await asyncio.to_thread(self._write, path, dump_blob(blob))
        logger.debug("Store put: key=%s key_id=%s", key, material.id)

    async def get(self, key: str) -> bytes:
        path = self.path_for(key)
        raw = await asyncio.to_thread(self._read, key, path)
        blob = load_blob(raw)
        material = await self._key_material()
        plaintext = decrypt(material, blob, self._cipher_backend)
        logger.debug("Store get: key=%s key_id=%s", key, material.id)
        return plaintext

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        await asyncio.to_thread(self._remove, path)
        logger.debug("Store delete: key=%s", key)

    async def exists(self, key: str) -> bool:
        path = self.path_for(key)
        return await asyncio.to_thread(path.is_file)

    async def keys(self) -> list[str]:
        return await asyncio.to_thread(self._list)
