"""At-rest Crypto Service.

Wraps AES-256-GCM for two shapes of data:

- byte streams (stored assets), using the chunked framing in ``framing``;
- short field values, stored as lowercase hex in ordinary text columns.

Every public operation resolves its key exactly once through the
KeyResolver. Derived keys are never cached here.
"""
import binascii
import logging
import os
import string
from typing import BinaryIO, Iterator, Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from atrest.domain.crypto.framing import (
    DEFAULT_CHUNK_SIZE,
    HEADER_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    ChunkDecryptor,
    StreamHeader,
    encrypt_chunks,
    read_exact,
)
from atrest.domain.keys.models import EncryptionKey, KeyCandidate
from atrest.domain.keys.resolver import KeyResolver
from atrest.errors import AuthenticationError, CiphertextFormatError

logger = logging.getLogger(__name__)

FIELD_VERSION = 0x01
_HEX_DIGITS = frozenset(string.hexdigits)


class ByteSink(Protocol):
    def write(self, data: bytes) -> object: ...


def looks_like_ciphertext(value: str) -> bool:
    """Cheap syntactic test: non-empty and made only of hex digits.

    This is a heuristic. Plaintext such as "abc123" passes it too; callers
    must fall back to the raw value when decryption then fails.
    """
    return bool(value) and all(c in _HEX_DIGITS for c in value)


class CryptoService:
    """Encrypts and decrypts streams and field values."""

    def __init__(self, resolver: KeyResolver, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.resolver = resolver
        self.chunk_size = chunk_size

    def _key(self, candidate: KeyCandidate) -> EncryptionKey:
        return self.resolver.resolve(candidate)

    # --------- Streams ----------
    def encrypt_stream(self, source: BinaryIO, candidate: KeyCandidate = None) -> Iterator[bytes]:
        """Encrypt ``source`` lazily; yields the framed ciphertext piece by piece."""
        key = self._key(candidate)
        return encrypt_chunks(source, key.material, self.chunk_size)

    def iter_decrypt(self, source: BinaryIO, candidate: KeyCandidate = None) -> Iterator[bytes]:
        """Yield verified plaintext chunks. The header is read and checked eagerly."""
        key = self._key(candidate)
        return iter(ChunkDecryptor(source, key.material))

    def decrypt_stream(self, source: BinaryIO, sink: ByteSink, candidate: KeyCandidate = None) -> int:
        """Decrypt ``source`` into ``sink``. Returns the number of plaintext bytes written.

        Each chunk is authenticated before it is written. If a later chunk
        fails, AuthenticationError.partial_output tells the caller that the
        sink already holds some verified bytes.
        """
        written = 0
        for chunk in self.iter_decrypt(source, candidate):
            if chunk:
                sink.write(chunk)
                written += len(chunk)
        return written

    def read_header(self, source: BinaryIO) -> StreamHeader:
        """Parse the framing header without touching the key."""
        return StreamHeader.from_bytes(read_exact(source, HEADER_SIZE))

    # --------- Fields ----------
    def encrypt_field(self, value: Optional[str], candidate: KeyCandidate = None) -> Optional[str]:
        """Encrypt and hex-encode a short value. None and "" pass through."""
        if value is None or value == "":
            return value

        key = self._key(candidate)
        nonce = os.urandom(NONCE_SIZE)
        ct_and_tag = AESGCM(key.material).encrypt(nonce, value.encode("utf-8"), None)
        return binascii.hexlify(bytes([FIELD_VERSION]) + nonce + ct_and_tag).decode("ascii")

    def decrypt_field(self, value: Optional[str], candidate: KeyCandidate = None) -> Optional[str]:
        """Decrypt a stored field value, failing open to the raw value."""
        if value is None or not looks_like_ciphertext(value):
            return value

        key = self._key(candidate)
        try:
            return self._decrypt_field_value(value, key)
        except AuthenticationError as e:
            # Possibly a false positive of the hex heuristic; keep the data
            logger.debug(f"Field value not decrypted, returning raw value: {e}")
            return value

    def _decrypt_field_value(self, value: str, key: EncryptionKey) -> str:
        try:
            raw = binascii.unhexlify(value)
        except (binascii.Error, ValueError) as e:
            raise CiphertextFormatError("Field value is not valid hex") from e

        if len(raw) < 1 + NONCE_SIZE + TAG_SIZE or raw[0] != FIELD_VERSION:
            raise CiphertextFormatError("Field value is not a recognised ciphertext")

        nonce = raw[1:1 + NONCE_SIZE]
        try:
            plaintext = AESGCM(key.material).decrypt(nonce, raw[1 + NONCE_SIZE:], None)
        except InvalidTag:
            raise AuthenticationError("Field ciphertext failed integrity verification") from None

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CiphertextFormatError("Decrypted field is not valid UTF-8") from e
