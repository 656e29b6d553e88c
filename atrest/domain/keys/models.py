"""Key Domain Models."""
import hashlib
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

KEY_SIZE = 32  # AES-256


@dataclass(frozen=True)
class EncryptionKey:
    """Opaque AES-256 key material.

    The raw bytes are excluded from repr and comparison output; use
    ``fingerprint`` when a key has to be referred to in logs.
    """
    material: bytes = field(repr=False)

    def __post_init__(self):
        if len(self.material) != KEY_SIZE:
            raise ValueError(f"EncryptionKey must be {KEY_SIZE} bytes. Got {len(self.material)}")

    @property
    def fingerprint(self) -> str:
        return hashlib.sha256(self.material).hexdigest()[:16]

    def __repr__(self) -> str:
        return f"EncryptionKey(fingerprint={self.fingerprint})"


@dataclass(frozen=True)
class RawSecret:
    """Textual secret that still has to be turned into an EncryptionKey."""
    value: str = field(repr=False)

    def __repr__(self) -> str:
        return "RawSecret([REDACTED])"


# None -> process default, RawSecret/str -> derived, EncryptionKey -> as is
KeyCandidate = Union[None, str, RawSecret, EncryptionKey]

# Optional zero-argument hook a record may expose to override its key
KeyProvider = Callable[[], KeyCandidate]


def call_key_provider(provider: Optional[KeyProvider]) -> KeyCandidate:
    """Invoke an optional key provider; an absent provider yields None."""
    if provider is None:
        return None
    return provider()
