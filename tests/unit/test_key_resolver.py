"""Tests for key candidate normalization."""
import base64
import io

import pytest

from atrest.domain.crypto.service import CryptoService
from atrest.domain.keys.models import EncryptionKey, RawSecret, call_key_provider
from atrest.domain.keys.resolver import KeyResolver, derive_key
from atrest.errors import AuthenticationError, KeyDerivationError

SECRET = "3f" * 32


def test_resolve_none_returns_default():
    """resolve(None) equals the key derived from the configured default."""
    resolver = KeyResolver(SECRET)
    assert resolver.resolve(None) == derive_key(SECRET)
    assert resolver.resolve() is resolver.resolve(None)


def test_resolve_resolved_key_is_identity():
    resolver = KeyResolver(SECRET)
    key = EncryptionKey(b"k" * 32)
    assert resolver.resolve(key) is key


def test_raw_secret_is_deterministic():
    """Same secret twice yields keys that decrypt each other's ciphertext."""
    resolver = KeyResolver(SECRET)
    other = "a1" * 32
    crypto = CryptoService(resolver, chunk_size=8)

    ciphertext = b"".join(crypto.encrypt_stream(io.BytesIO(b"payload bytes"), RawSecret(other)))
    sink = io.BytesIO()
    crypto.decrypt_stream(io.BytesIO(ciphertext), sink, RawSecret(other))
    assert sink.getvalue() == b"payload bytes"

    assert resolver.resolve(RawSecret(other)) == resolver.resolve(other)
    assert resolver.resolve(RawSecret(other)) != resolver.resolve(None)


def test_wrong_key_fails_with_authentication_error():
    resolver = KeyResolver(SECRET)
    crypto = CryptoService(resolver, chunk_size=8)
    ciphertext = b"".join(crypto.encrypt_stream(io.BytesIO(b"payload"), None))

    with pytest.raises(AuthenticationError):
        crypto.decrypt_stream(io.BytesIO(ciphertext), io.BytesIO(), RawSecret("a1" * 32))


def test_base64url_secret_accepted():
    material = bytes(range(32))
    unpadded = base64.urlsafe_b64encode(material).decode().rstrip("=")
    padded = base64.urlsafe_b64encode(material).decode()

    assert derive_key(unpadded).material == material
    assert derive_key(padded).material == material
    assert derive_key(material.hex()).material == material
    assert derive_key(material.hex().upper()).material == material


@pytest.mark.parametrize("secret", [
    "",
    "short",
    "3f" * 31,
    "zz" * 32,
    base64.urlsafe_b64encode(b"x" * 16).decode(),
])
def test_malformed_secret_raises(secret):
    with pytest.raises(KeyDerivationError) as exc_info:
        KeyResolver().resolve(RawSecret(secret))
    if secret:
        assert secret not in str(exc_info.value)


def test_malformed_default_fails_at_construction():
    with pytest.raises(KeyDerivationError):
        KeyResolver("not-a-key")


def test_missing_default_raises_on_none():
    resolver = KeyResolver(None)
    assert not resolver.has_default
    with pytest.raises(KeyDerivationError, match="No default encryption key"):
        resolver.resolve(None)


def test_unsupported_candidate_type():
    with pytest.raises(KeyDerivationError, match="Unsupported key candidate"):
        KeyResolver(SECRET).resolve(12345)


def test_key_repr_hides_material():
    key = derive_key(SECRET)
    assert SECRET not in repr(key)
    assert key.fingerprint in repr(key)
    assert "3f" * 32 not in repr(RawSecret(SECRET))


def test_call_key_provider_absent_is_none():
    assert call_key_provider(None) is None
    assert call_key_provider(lambda: "abc") == "abc"
