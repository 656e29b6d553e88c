import pytest

from atrest import dependencies
from atrest.adapters.local_storage.store import LocalAssetStore
from atrest.core.config import Settings
from atrest.domain.assets.manager import AssetEncryptionManager
from atrest.domain.crypto.service import CryptoService
from atrest.domain.delivery.interceptor import DeliveryOptions, StreamingDownloadInterceptor
from atrest.domain.keys.resolver import KeyResolver

DEFAULT_SECRET = "3f" * 32
OTHER_SECRET = "a1" * 32

# Small chunks so short fixtures still span several frames
TEST_CHUNK_SIZE = 16


@pytest.fixture
def resolver():
    return KeyResolver(DEFAULT_SECRET)


@pytest.fixture
def crypto(resolver):
    return CryptoService(resolver, chunk_size=TEST_CHUNK_SIZE)


@pytest.fixture
def store(tmp_path):
    return LocalAssetStore(str(tmp_path / "assets"))


@pytest.fixture
def manager(store, crypto):
    return AssetEncryptionManager(store, crypto)


@pytest.fixture
def interceptor(manager):
    return StreamingDownloadInterceptor(manager, DeliveryOptions())


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "MODE": "dev",
        "DEFAULT_KEY": DEFAULT_SECRET,
        "STORAGE_ROOT": str(tmp_path / "assets"),
        "CHUNK_SIZE": TEST_CHUNK_SIZE,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def configured(tmp_path):
    """Point the process-wide dependencies at a temporary store and test key."""
    original = dependencies.get_settings()
    dependencies.configure(make_settings(tmp_path))
    yield dependencies
    dependencies.configure(original)


@pytest.fixture
def settings_for(tmp_path):
    """Build test settings with overrides, rooted at this test's tmp_path."""
    def _build(**overrides) -> Settings:
        return make_settings(tmp_path, **overrides)
    return _build
