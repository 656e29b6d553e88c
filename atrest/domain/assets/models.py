"""Asset Domain Models."""
import posixpath
from dataclasses import dataclass, field
from typing import Optional

from atrest.domain.keys.models import KeyProvider

ENCRYPTED_SUFFIX = ".enc"


@dataclass
class StoredAsset:
    """A named binary object on the backing store.

    ``directory`` is relative to the store root. ``key_provider`` is the
    optional per-record key hook; None means "use the default key".
    """
    name: str
    directory: str = ""
    key_provider: Optional[KeyProvider] = field(default=None, repr=False, compare=False)

    @property
    def path(self) -> str:
        return posixpath.join(self.directory, self.name) if self.directory else self.name

    @property
    def extension(self) -> str:
        return get_file_extension(self.name)


def get_file_extension(name: str) -> str:
    """Lower-cased substring after the last '.', or "" when there is none."""
    base = posixpath.basename(name)
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[1].lower()
