"""Error taxonomy for at-rest encryption.

Cryptographic failures on the file path always propagate. Field-level
heuristic misses are never raised; see ``CryptoService.decrypt_field``.
"""
from typing import Optional


class AtRestError(Exception):
    """Base class for all atrest errors."""


class KeyDerivationError(AtRestError):
    """Secret is missing or malformed for the AES-256 primitive.

    Messages must never include the secret itself.
    """


class AuthenticationError(AtRestError):
    """Ciphertext failed integrity verification (tampered or wrong key).

    ``partial_output`` is True when verified plaintext was already written to a
    sink before the failing chunk was reached, so the caller can abort the
    response instead of finishing it.
    """

    def __init__(self, message: str, partial_output: bool = False):
        super().__init__(message)
        self.partial_output = partial_output


class CiphertextFormatError(AuthenticationError):
    """Ciphertext framing is structurally invalid (bad magic, truncation, ...)."""


class AssetNotFoundError(AtRestError):
    """Asset does not exist on the backing store."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(message or f"Asset not found: {path}")
        self.path = path


class ResponseAlreadySentError(AtRestError):
    """A response sink was written to after delivery finished."""
