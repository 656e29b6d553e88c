"""Encrypted SQLAlchemy column types.

Encrypt on bind (write) and decrypt on result (read). Ciphertext is stored as
hex in the same text column plaintext would use; legacy plaintext rows keep
reading back unchanged thanks to the fail-open field decryption.
"""
from typing import Callable, Optional

from sqlalchemy import event
from sqlalchemy.orm.base import NO_VALUE
from sqlalchemy.types import String, Text, TypeDecorator

from atrest.domain.crypto.service import CryptoService
from atrest.domain.fields.codec import EncryptedFieldCodec

CryptoFactory = Callable[[], CryptoService]


def _default_crypto() -> CryptoService:
    from atrest.dependencies import get_crypto_service
    return get_crypto_service()


class _EncryptedMixin:
    crypto_factory: Optional[CryptoFactory] = None

    def _crypto(self) -> CryptoService:
        factory = self.crypto_factory or _default_crypto
        return factory()

    def _codec(self) -> EncryptedFieldCodec:
        return EncryptedFieldCodec(type(self).__name__, self._crypto())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self._codec().prepare_for_storage(self._validate(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        codec = self._codec()
        codec.set_value(value)
        return codec.value

    def _validate(self, value):
        return value


class EncryptedText(_EncryptedMixin, TypeDecorator):
    impl = Text
    cache_ok = True

    def __init__(self, crypto_factory: Optional[CryptoFactory] = None, **kwargs):
        super().__init__(**kwargs)
        self.crypto_factory = crypto_factory


class EncryptedString(_EncryptedMixin, TypeDecorator):
    """Encrypted varchar. Hex ciphertext is roughly 2x the plaintext plus 58 chars."""
    impl = String
    cache_ok = True

    def __init__(self, length: Optional[int] = None, crypto_factory: Optional[CryptoFactory] = None, **kwargs):
        super().__init__(**kwargs)
        self.length = length
        self.crypto_factory = crypto_factory

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(self.length))


class EncryptedEnum(_EncryptedMixin, TypeDecorator):
    """Enum whose value is stored encrypted in a text column."""
    impl = Text
    cache_ok = True

    def __init__(self, *values: str, crypto_factory: Optional[CryptoFactory] = None, **kwargs):
        super().__init__(**kwargs)
        self.values = tuple(values)
        self.crypto_factory = crypto_factory

    def _validate(self, value):
        if value not in self.values:
            raise ValueError(f"{value!r} is not one of {list(self.values)}")
        return value


def retain_prior_on_null(attribute) -> None:
    """Apply the field codec's null rule to an ORM attribute.

    Setting None on a partial update keeps the previous value instead of
    wiping the stored ciphertext.
    """
    @event.listens_for(attribute, "set", retval=True, active_history=True)
    def _retain(target, value, oldvalue, initiator):
        prior = None if oldvalue is NO_VALUE else oldvalue
        return EncryptedFieldCodec.retain(value, prior)
