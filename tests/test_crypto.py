"""
Tests for the vault crypto core.

Tests cover:
- KeyMaterial validation and key encode/decode
- AEAD encrypt/decrypt for both cipher backends
- Nonce freshness
- Tamper, truncation and wrong-key detection
- Blob serialization
- URL-safe base64 alphabet checks
"""
import base64
import binascii

import orjson
import pytest

from securestore.exceptions import CorruptKey, StorageError
from securestore.vault.crypto import (
    KEY_LENGTH,
    NONCE_SIZE,
    KeyMaterial,
    StoredBlob,
    b64url_decode,
    b64url_encode,
    decode_key,
    decrypt,
    dump_blob,
    encode_key,
    encrypt,
    generate_key_material,
    generate_master_key,
    load_blob,
)


@pytest.fixture
def key():
    return generate_key_material()


def _flip(text: str, index: int = 0) -> str:
    raw = bytearray(b64url_decode(text))
    raw[index] ^= 0x01
    return b64url_encode(bytes(raw))


# --- Key material ---

class TestKeyMaterial:
    """Tests for key material creation and encoding."""

    def test_generated_key_is_32_bytes(self, key):
        """Test generated key length and default id."""
        assert len(key.key_bytes) == KEY_LENGTH
        assert key.id == "default"

    def test_generated_keys_differ(self):
        """Test two generations produce different keys."""
        assert generate_key_material().key_bytes != generate_key_material().key_bytes

    def test_wrong_length_rejected(self):
        """Test KeyMaterial refuses keys that are not 32 bytes."""
        with pytest.raises(ValueError):
            KeyMaterial(key_bytes=b"short")

    def test_repr_hides_key_bytes(self, key):
        """Test key bytes never show up in repr."""
        assert repr(key.key_bytes) not in repr(key)
        assert "key_bytes" not in repr(key)

    def test_encode_decode_roundtrip(self, key):
        """Test encode_key/decode_key restore identical material."""
        restored = decode_key(encode_key(key))
        assert restored == key

    def test_decode_keeps_key_id(self, key):
        """Test decode_key labels the material with the given id."""
        assert decode_key(encode_key(key), "primary").id == "primary"

    def test_decode_rejects_wrong_length(self):
        """Test a valid base64 secret of the wrong size is corrupt."""
        with pytest.raises(CorruptKey):
            decode_key("abcd")

    def test_decode_rejects_invalid_base64(self):
        """Test a non-base64 secret is corrupt."""
        with pytest.raises(CorruptKey):
            decode_key("not base64 at all!")

    def test_generate_master_key(self):
        """Test operator utility returns base64 of 32 bytes."""
        assert len(base64.b64decode(generate_master_key())) == KEY_LENGTH


# --- Encrypt / decrypt ---

class TestSealing:
    """Tests for AEAD sealing and opening."""

    @pytest.mark.parametrize("backend", ["aesgcm", "chacha20"])
    def test_roundtrip(self, key, backend):
        """Test decrypt(encrypt(x)) == x for each backend."""
        blob = encrypt(key, b"top-secret-payload", backend)
        assert decrypt(key, blob, backend) == b"top-secret-payload"

    def test_roundtrip_empty_value(self, key):
        """Test an empty value round-trips."""
        assert decrypt(key, encrypt(key, b"")) == b""

    def test_blob_layout(self, key):
        """Test nonce is 12 bytes and ciphertext carries a 16-byte tag."""
        blob = encrypt(key, b"abc")
        assert len(b64url_decode(blob.nonce)) == NONCE_SIZE
        assert len(b64url_decode(blob.ciphertext)) == 3 + 16

    def test_fresh_nonce_per_call(self, key):
        """Test sealing the same plaintext twice uses different nonces."""
        first = encrypt(key, b"same")
        second = encrypt(key, b"same")
        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_plaintext_not_in_blob(self, key):
        """Test the plaintext marker does not appear in the blob."""
        blob = encrypt(key, b"MARKER-12345")
        assert b"MARKER-12345" not in dump_blob(blob)

    def test_wrong_key_fails(self, key):
        """Test opening with another key raises StorageError."""
        blob = encrypt(key, b"data")
        with pytest.raises(StorageError, match="decrypt failed"):
            decrypt(generate_key_material(), blob)

    def test_tampered_ciphertext_fails(self, key):
        """Test a flipped ciphertext bit is detected."""
        blob = encrypt(key, b"data")
        bad = StoredBlob(nonce=blob.nonce, ciphertext=_flip(blob.ciphertext))
        with pytest.raises(StorageError, match="decrypt failed"):
            decrypt(key, bad)

    def test_tampered_nonce_fails(self, key):
        """Test a flipped nonce bit is detected."""
        blob = encrypt(key, b"data")
        bad = StoredBlob(nonce=_flip(blob.nonce), ciphertext=blob.ciphertext)
        with pytest.raises(StorageError, match="decrypt failed"):
            decrypt(key, bad)

    def test_truncated_ciphertext_fails(self, key):
        """Test a ciphertext shorter than the tag is rejected."""
        blob = encrypt(key, b"data")
        short = b64url_encode(b64url_decode(blob.ciphertext)[:8])
        with pytest.raises(StorageError, match="decrypt failed"):
            decrypt(key, StoredBlob(nonce=blob.nonce, ciphertext=short))

    def test_wrong_nonce_length_fails(self, key):
        """Test a nonce of the wrong size is rejected."""
        blob = encrypt(key, b"data")
        bad = StoredBlob(nonce=b64url_encode(b"\x00" * 8), ciphertext=blob.ciphertext)
        with pytest.raises(StorageError, match="nonce must be"):
            decrypt(key, bad)

    def test_undecodable_field_fails(self, key):
        """Test characters outside the base64url alphabet are rejected."""
        blob = encrypt(key, b"data")
        bad = StoredBlob(nonce="***", ciphertext=blob.ciphertext)
        with pytest.raises(StorageError, match="nonce decode failed"):
            decrypt(key, bad)

    def test_cross_backend_fails(self, key):
        """Test a blob sealed with one cipher does not open with the other."""
        blob = encrypt(key, b"data", "aesgcm")
        with pytest.raises(StorageError):
            decrypt(key, blob, "chacha20")


# --- Blob serialization ---

class TestBlobSerialization:
    """Tests for the JSON blob document."""

    def test_dump_is_compact_json(self, key):
        """Test the document holds exactly nonce and ciphertext."""
        blob = encrypt(key, b"data")
        doc = orjson.loads(dump_blob(blob))
        assert set(doc) == {"nonce", "ciphertext"}
        assert b" " not in dump_blob(blob)

    def test_load_restores_blob(self, key):
        """Test load_blob(dump_blob(b)) == b."""
        blob = encrypt(key, b"data")
        assert load_blob(dump_blob(blob)) == blob

    @pytest.mark.parametrize("raw", [
        b"",
        b"not json",
        b"[]",
        b'{"nonce": "abc"}',
        b'{"nonce": 1, "ciphertext": 2}',
    ])
    def test_malformed_document(self, raw):
        """Test malformed documents raise StorageError."""
        with pytest.raises(StorageError, match="malformed blob"):
            load_blob(raw)


# --- URL-safe base64 ---

class TestB64Url:
    """Tests for the unpadded URL-safe base64 helpers."""

    def test_roundtrip_without_padding(self):
        """Test encoded text carries no padding and decodes back."""
        data = b"\xfb\xff\xfe"
        text = b64url_encode(data)
        assert text == "-__-"
        assert b64url_decode(text) == data
        assert b64url_decode(b64url_encode(b"ab")) == b"ab"

    @pytest.mark.parametrize("text", ["+__-", "-__/", "ab+/", "a b", "ab*c"])
    def test_rejects_foreign_characters(self, text):
        """Test standard-alphabet and non-alphabet characters are refused."""
        with pytest.raises(binascii.Error):
            b64url_decode(text)

    def test_standard_alphabet_nonce_rejected(self, key):
        """Test a nonce containing a standard-alphabet character fails to decode."""
        blob = encrypt(key, b"data")
        forged = StoredBlob(nonce="+" + blob.nonce[1:], ciphertext=blob.ciphertext)
        with pytest.raises(StorageError, match="nonce decode failed"):
            decrypt(key, forged)
