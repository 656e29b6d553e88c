"""Chunked AES-256-GCM stream framing.

Stream layout::

    header  = magic "ATR1" (4) | version (1) | chunk_size u32 BE (4) | nonce_prefix (7)
    chunk_i = ciphertext_i || tag_i (16)

Chunk nonce is ``nonce_prefix (7) | counter u32 BE (4) | final_flag (1)`` and
the header is bound to every chunk as AAD, so reordering, truncation, header
tampering and wrong keys all fail tag verification. Every chunk carries
exactly ``chunk_size`` plaintext bytes except the final one (0..chunk_size).
"""
import math
import secrets
import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from atrest.errors import AuthenticationError, CiphertextFormatError

# Constants
MAGIC_BYTES = b"ATR1"
VERSION = 0x01
NONCE_PREFIX_SIZE = 7
NONCE_SIZE = 12             # 96-bit nonce for GCM
TAG_SIZE = 16               # 128-bit GCM tag
MAX_COUNTER = 0xFFFFFFFF

DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CHUNK_SIZE = 16 * 1024 * 1024

HEADER_SIZE = (
    4 +    # Magic
    1 +    # Version
    4 +    # Chunk size
    7      # Nonce prefix
)  # Total: 16 bytes


@dataclass(frozen=True)
class StreamHeader:
    """Encrypted stream header."""
    chunk_size: int
    nonce_prefix: bytes
    version: int = VERSION

    def to_bytes(self) -> bytes:
        return (
            MAGIC_BYTES +
            struct.pack("B", self.version) +
            struct.pack(">I", self.chunk_size) +
            self.nonce_prefix
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "StreamHeader":
        if len(data) < HEADER_SIZE:
            raise CiphertextFormatError("Truncated stream header")
        if data[:4] != MAGIC_BYTES:
            raise CiphertextFormatError("Invalid stream magic")

        version = struct.unpack("B", data[4:5])[0]
        if version != VERSION:
            raise CiphertextFormatError(f"Unsupported stream version: {version}")

        chunk_size = struct.unpack(">I", data[5:9])[0]
        if not 0 < chunk_size <= MAX_CHUNK_SIZE:
            raise CiphertextFormatError(f"Invalid chunk size: {chunk_size}")

        return cls(chunk_size=chunk_size, nonce_prefix=data[9:HEADER_SIZE], version=version)

    def chunk_nonce(self, counter: int, final: bool) -> bytes:
        if counter > MAX_COUNTER:
            raise ValueError("Stream too long: chunk counter exhausted")
        return self.nonce_prefix + struct.pack(">I", counter) + (b"\x01" if final else b"\x00")

    def plaintext_length(self, encrypted_size: int) -> int:
        """Exact plaintext length for an authentic stream of ``encrypted_size`` bytes."""
        body = encrypted_size - HEADER_SIZE
        if body < TAG_SIZE:
            raise CiphertextFormatError("Stream too short to hold a final chunk")
        chunks = math.ceil(body / (self.chunk_size + TAG_SIZE))
        return body - chunks * TAG_SIZE


def read_exact(source: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, looping over short reads."""
    parts = []
    remaining = size
    while remaining > 0:
        part = source.read(remaining)
        if not part:
            break
        parts.append(part)
        remaining -= len(part)
    return b"".join(parts)


def encrypt_chunks(source: BinaryIO, key: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the header followed by encrypted chunks.

    One chunk of lookahead is kept so the last chunk can be flagged final.
    """
    if not 0 < chunk_size <= MAX_CHUNK_SIZE:
        raise ValueError(f"chunk_size must be in 1..{MAX_CHUNK_SIZE}")

    header = StreamHeader(chunk_size=chunk_size, nonce_prefix=secrets.token_bytes(NONCE_PREFIX_SIZE))
    header_bytes = header.to_bytes()
    aesgcm = AESGCM(key)
    yield header_bytes

    counter = 0
    current = read_exact(source, chunk_size)
    while True:
        following = read_exact(source, chunk_size) if len(current) == chunk_size else b""
        final = not following
        yield aesgcm.encrypt(header.chunk_nonce(counter, final), current, header_bytes)
        if final:
            return
        current = following
        counter += 1


class ChunkDecryptor:
    """Iterates verified plaintext chunks of an encrypted stream."""

    def __init__(self, source: BinaryIO, key: bytes):
        self._source = source
        self._aesgcm = AESGCM(key)
        self._header_bytes = read_exact(source, HEADER_SIZE)
        self.header = StreamHeader.from_bytes(self._header_bytes)

    def __iter__(self) -> Iterator[bytes]:
        record_size = self.header.chunk_size + TAG_SIZE
        counter = 0
        current = read_exact(self._source, record_size)
        if not current:
            raise CiphertextFormatError("Stream has no chunks")

        while True:
            following = read_exact(self._source, record_size) if len(current) == record_size else b""
            final = not following
            if len(current) < TAG_SIZE:
                raise CiphertextFormatError("Truncated chunk", partial_output=counter > 0)
            try:
                plaintext = self._aesgcm.decrypt(
                    self.header.chunk_nonce(counter, final), current, self._header_bytes
                )
            except InvalidTag:
                raise AuthenticationError(
                    "Integrity check failed - data was tampered with or the key is wrong",
                    partial_output=counter > 0,
                ) from None
            yield plaintext
            if final:
                return
            current = following
            counter += 1
