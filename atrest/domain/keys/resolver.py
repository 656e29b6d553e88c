"""Key resolution.

Turns a KeyCandidate into an EncryptionKey. The default key is derived once,
from the secret handed to the constructor, and never mutated afterwards.
"""
import base64
import binascii
import logging
import re
from typing import Optional

from atrest.domain.keys.models import KEY_SIZE, EncryptionKey, KeyCandidate, RawSecret
from atrest.errors import KeyDerivationError

logger = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
_B64U_KEY = re.compile(r"^[A-Za-z0-9_-]{43}=?$")


def derive_key(secret: str) -> EncryptionKey:
    """Derive an EncryptionKey from its textual form.

    Accepts 64 hex characters or base64url (padded or not) of 32 bytes.
    Raises KeyDerivationError for anything else. The secret never appears
    in the error message.
    """
    if not isinstance(secret, str):
        raise KeyDerivationError(f"Secret must be a string, got {type(secret).__name__}")

    secret = secret.strip()
    if _HEX_KEY.match(secret):
        return EncryptionKey(binascii.unhexlify(secret))

    if _B64U_KEY.match(secret):
        padded = secret if secret.endswith("=") else secret + "="
        try:
            material = base64.urlsafe_b64decode(padded)
        except (binascii.Error, ValueError) as e:
            raise KeyDerivationError("Secret is not valid base64url") from e
        if len(material) == KEY_SIZE:
            return EncryptionKey(material)

    raise KeyDerivationError(
        f"Secret must be 64 hex characters or base64url of {KEY_SIZE} bytes (got length {len(secret)})"
    )


class KeyResolver:
    """Resolves key candidates against a process-wide default."""

    def __init__(self, default_secret: Optional[str] = None):
        self._default: Optional[EncryptionKey] = None
        if default_secret:
            self._default = derive_key(default_secret)
            logger.info(f"Default encryption key loaded (fingerprint={self._default.fingerprint})")

    @property
    def has_default(self) -> bool:
        return self._default is not None

    def resolve(self, candidate: KeyCandidate = None) -> EncryptionKey:
        if candidate is None:
            if self._default is None:
                raise KeyDerivationError("No default encryption key configured (ATREST_DEFAULT_KEY)")
            return self._default

        if isinstance(candidate, EncryptionKey):
            return candidate

        if isinstance(candidate, RawSecret):
            return derive_key(candidate.value)

        if isinstance(candidate, str):
            return derive_key(candidate)

        raise KeyDerivationError(f"Unsupported key candidate type: {type(candidate).__name__}")
