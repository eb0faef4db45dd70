"""
Vault Crypto Core — Key material, AEAD blob sealing, and blob serialization.

Every stored value becomes one ``StoredBlob``:
    {"nonce": <b64url 12B>, "ciphertext": <b64url payload + 16B tag>}

Security Note:
    Never log plaintext, ciphertext, nonces or key bytes.
    Nonces are random 96-bit values drawn per call; never derive them
    from content.
"""
import os
import base64
import secrets
import binascii
import logging

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from ..exceptions import CorruptKey, KeyGenerationFailed, StorageError

logger = logging.getLogger("securestore.vault")

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit tag
KEY_LENGTH = 32  # 256-bit key

DEFAULT_KEY_ID = "default"

CIPHER_BACKENDS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}


def get_cipher_cls(backend: str = "aesgcm") -> type:
    """Return the AEAD cipher class for a backend name."""
    try:
        return CIPHER_BACKENDS[backend.lower()]
    except KeyError:
        raise StorageError(f"unsupported cipher backend: {backend}") from None


# ---------------------------------------------------------------------------
# Base64 helpers
# ---------------------------------------------------------------------------

def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """Inverse of :func:`b64url_encode`; rejects characters outside the alphabet.

    The standard-alphabet ``+`` and ``/`` are refused too, so every value
    has exactly one accepted spelling.

    Raises:
        binascii.Error: If ``text`` is not valid URL-safe base64.
    """
    if "+" in text or "/" in text:
        raise binascii.Error("non URL-safe base64 character")
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

class KeyMaterial(BaseModel):
    """A 256-bit symmetric key and its non-secret label.

    ``id`` is safe to log; ``key_bytes`` never is and is kept out of repr.
    """

    model_config = ConfigDict(frozen=True)

    id: str = DEFAULT_KEY_ID
    key_bytes: bytes = Field(repr=False)

    @field_validator("key_bytes")
    @classmethod
    def validate_length(cls, v: bytes) -> bytes:
        if len(v) != KEY_LENGTH:
            raise ValueError(
                f"key material must be exactly {KEY_LENGTH} bytes, got {len(v)}"
            )
        return v


def generate_key_material(key_id: str = DEFAULT_KEY_ID) -> KeyMaterial:
    """Draw a fresh 32-byte key from the OS CSPRNG.

    Raises:
        KeyGenerationFailed: If the random source is unavailable.
    """
    try:
        raw = secrets.token_bytes(KEY_LENGTH)
    except (OSError, NotImplementedError) as err:
        raise KeyGenerationFailed(str(err)) from err
    return KeyMaterial(id=key_id, key_bytes=raw)


def encode_key(material: KeyMaterial) -> str:
    """Encode key bytes as standard base64 for the OS secret store."""
    return base64.b64encode(material.key_bytes).decode("ascii")


def decode_key(secret: str, key_id: str = DEFAULT_KEY_ID) -> KeyMaterial:
    """Decode a stored secret back into key material.

    Raises:
        CorruptKey: If the secret is not base64 or not exactly 32 bytes.
    """
    try:
        raw = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as err:
        raise CorruptKey(str(err)) from err
    if len(raw) != KEY_LENGTH:
        raise CorruptKey(f"expected {KEY_LENGTH} bytes, got {len(raw)}")
    return KeyMaterial(id=key_id, key_bytes=raw)


def generate_master_key() -> str:
    """Generate a random 32-byte key and return it as base64.

    This is a utility for operators provisioning a secret store by hand.
    """
    return encode_key(generate_key_material())


# ---------------------------------------------------------------------------
# Blob sealing
# ---------------------------------------------------------------------------

class StoredBlob(BaseModel):
    """One encrypted value at rest."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    nonce: str
    ciphertext: str


def encrypt(
    key: KeyMaterial,
    plaintext: bytes,
    cipher_backend: str = "aesgcm",
) -> StoredBlob:
    """Seal plaintext under ``key`` with a fresh random nonce.

    Args:
        key: Key material to encrypt with.
        plaintext: Data to encrypt.
        cipher_backend: ``aesgcm`` or ``chacha20``.

    Returns:
        StoredBlob with base64url nonce and ciphertext+tag.
    """
    cipher = get_cipher_cls(cipher_backend)(key.key_bytes)
    nonce = os.urandom(NONCE_SIZE)
    try:
        ct = cipher.encrypt(nonce, plaintext, None)
    except (OverflowError, ValueError) as err:
        raise StorageError(f"encrypt failed: {err}") from err
    return StoredBlob(nonce=b64url_encode(nonce), ciphertext=b64url_encode(ct))


def decrypt(
    key: KeyMaterial,
    blob: StoredBlob,
    cipher_backend: str = "aesgcm",
) -> bytes:
    """Open a blob sealed by :func:`encrypt`.

    Raises:
        StorageError: If either field fails to decode, or authentication
            fails (wrong key, tampered or truncated data).
    """
    try:
        nonce = b64url_decode(blob.nonce)
    except (binascii.Error, ValueError) as err:
        raise StorageError(f"nonce decode failed: {err}") from err
    try:
        ct = b64url_decode(blob.ciphertext)
    except (binascii.Error, ValueError) as err:
        raise StorageError(f"ciphertext decode failed: {err}") from err
    if len(nonce) != NONCE_SIZE:
        raise StorageError(
            f"decrypt failed: nonce must be {NONCE_SIZE} bytes, got {len(nonce)}"
        )
    if len(ct) < TAG_SIZE:
        raise StorageError(
            f"decrypt failed: ciphertext too short: {len(ct)} bytes "
            f"(minimum {TAG_SIZE})"
        )
    cipher = get_cipher_cls(cipher_backend)(key.key_bytes)
    try:
        return cipher.decrypt(nonce, ct, None)
    except InvalidTag:
        raise StorageError("decrypt failed: authentication tag mismatch") from None


# ---------------------------------------------------------------------------
# Blob serialization
# ---------------------------------------------------------------------------

def dump_blob(blob: StoredBlob) -> bytes:
    """Serialize a blob to compact JSON."""
    return orjson.dumps(blob.model_dump())


def load_blob(raw: bytes) -> StoredBlob:
    """Parse a blob written by :func:`dump_blob`.

    Raises:
        StorageError: If ``raw`` is not a well-formed blob document.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as err:
        raise StorageError(f"malformed blob: {err}") from err
    try:
        return StoredBlob.model_validate(data)
    except ValidationError as err:
        # pydantic messages echo input values; keep field names only
        fields = sorted({str(e["loc"][0]) for e in err.errors() if e["loc"]})
        raise StorageError(
            f"malformed blob: invalid field(s) {', '.join(fields) or '<root>'}"
        ) from None
