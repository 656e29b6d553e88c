"""Encrypted scalar field.

Values are encrypted on every write and decrypted on read. Ciphertext lives
in the same text column as legacy plaintext, told apart only by the hex
heuristic in ``CryptoService.decrypt_field``.
"""
from typing import Any, Mapping, Optional

from atrest.domain.crypto.service import CryptoService


class EncryptedFieldCodec:
    """Wraps one named field of a record."""

    def __init__(self, name: str, crypto: CryptoService):
        self.name = name
        self.crypto = crypto
        self.raw_value: Optional[str] = None

    def set_value(self, value: Optional[str], record: Optional[Mapping[str, Any]] = None) -> None:
        """Set the in-memory raw value.

        A None on a partial update keeps the prior stored (still encrypted)
        value from ``record`` instead of wiping it.
        """
        prior = record.get(self.name) if record is not None else None
        self.raw_value = self.retain(value, prior)

    @staticmethod
    def retain(value: Optional[Any], prior: Optional[Any]) -> Optional[Any]:
        """None keeps ``prior``; any other value replaces it."""
        return prior if value is None else value

    @property
    def value(self) -> Optional[str]:
        return self.crypto.decrypt_field(self.raw_value)

    def prepare_for_storage(self, value: Optional[str]) -> Optional[str]:
        """Encrypt ``value`` for persistence and remember the ciphertext."""
        ciphertext = self.crypto.encrypt_field(value)
        self.raw_value = ciphertext
        return ciphertext
