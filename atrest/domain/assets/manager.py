"""Asset Encryption Manager.

Owns the at-rest lifecycle of stored files. Encryption state is decided by
the stored name alone: a name ending in ``.enc`` (any case) is encrypted.
File contents are never inspected for that decision.
"""
import logging
from typing import Optional

from atrest.domain.assets.models import ENCRYPTED_SUFFIX, StoredAsset, get_file_extension
from atrest.domain.assets.ports import AssetStore
from atrest.domain.crypto.service import ByteSink, CryptoService
from atrest.domain.keys.models import KeyCandidate, KeyProvider, call_key_provider

logger = logging.getLogger(__name__)


def has_encrypted_suffix(name: str) -> bool:
    return name.lower().endswith(ENCRYPTED_SUFFIX)


def strip_encrypted_suffix(name: str) -> str:
    """Strip exactly one trailing suffix occurrence, case-insensitively."""
    if has_encrypted_suffix(name):
        return name[:-len(ENCRYPTED_SUFFIX)]
    return name


class AssetEncryptionManager:
    """Encrypts assets after they are written and recovers their original names."""

    def __init__(self, store: AssetStore, crypto: CryptoService):
        self.store = store
        self.crypto = crypto

    def is_encrypted(self, asset: StoredAsset) -> bool:
        return has_encrypted_suffix(asset.name)

    def original_name(self, asset: StoredAsset) -> str:
        return strip_encrypted_suffix(asset.name)

    def original_extension(self, asset: StoredAsset) -> str:
        return get_file_extension(self.original_name(asset))

    def key_candidate(self, asset: StoredAsset, key_provider: Optional[KeyProvider] = None) -> KeyCandidate:
        """Explicit provider first, then the asset's own hook, else the default."""
        return call_key_provider(key_provider or asset.key_provider)

    def on_after_write(self, asset: StoredAsset) -> bool:
        """Lifecycle hook for "after successful persist"."""
        return self.encrypt_if_needed(asset)

    def encrypt_if_needed(self, asset: StoredAsset, key_provider: Optional[KeyProvider] = None) -> bool:
        """Encrypt the asset in place unless it already is.

        The stored name gains the ``.enc`` suffix and the plaintext object is
        deleted. Returns True if an encryption happened.
        """
        if self.is_encrypted(asset):
            return False

        candidate = self.key_candidate(asset, key_provider)
        source_path = asset.path
        encrypted = StoredAsset(
            name=asset.name + ENCRYPTED_SUFFIX,
            directory=asset.directory,
            key_provider=asset.key_provider,
        )

        # Stage the ciphertext first; the plaintext is only removed once it is in place
        with self.store.open_read(source_path) as source:
            chunks = self.crypto.encrypt_stream(source, candidate)
            with self.store.write_atomic(encrypted.path) as target:
                for chunk in chunks:
                    target.write(chunk)

        self.store.delete(source_path)
        asset.name = encrypted.name
        logger.info(f"Encrypted asset {source_path} -> {encrypted.path}")
        return True

    def decrypt_to(self, asset: StoredAsset, sink: ByteSink, key_provider: Optional[KeyProvider] = None) -> int:
        """Decrypt an encrypted asset into ``sink``. The source handle is always released."""
        candidate = self.key_candidate(asset, key_provider)
        with self.store.open_read(asset.path) as source:
            return self.crypto.decrypt_stream(source, sink, candidate)

    def open_source(self, asset: StoredAsset):
        """Context manager over the stored (possibly encrypted) bytes."""
        return self.store.open_read(asset.path)

    def read_plaintext_length(self, asset: StoredAsset) -> int:
        """Exact decrypted length, computed from the framing header only."""
        with self.store.open_read(asset.path) as source:
            header = self.crypto.read_header(source)
        return header.plaintext_length(self.store.size(asset.path))
