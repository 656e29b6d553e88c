"""Dependency Injection Module.

Single initialization point: every service is built once from ``settings``
on first use. Tests call ``reset_dependencies()`` after changing settings.
"""
import logging
from typing import Optional

from atrest.adapters.local_storage.store import LocalAssetStore
from atrest.core.config import Settings, settings as default_settings
from atrest.domain.assets.manager import AssetEncryptionManager
from atrest.domain.crypto.service import CryptoService
from atrest.domain.delivery.interceptor import DeliveryOptions, StreamingDownloadInterceptor
from atrest.domain.keys.resolver import KeyResolver

logger = logging.getLogger(__name__)

_SETTINGS: Settings = default_settings
_RESOLVER: Optional[KeyResolver] = None
_CRYPTO: Optional[CryptoService] = None
_STORE: Optional[LocalAssetStore] = None
_MANAGER: Optional[AssetEncryptionManager] = None
_INTERCEPTOR: Optional[StreamingDownloadInterceptor] = None


def configure(new_settings: Settings) -> None:
    """Swap the settings object and drop everything built from the old one."""
    global _SETTINGS
    _SETTINGS = new_settings
    reset_dependencies()


def reset_dependencies() -> None:
    global _RESOLVER, _CRYPTO, _STORE, _MANAGER, _INTERCEPTOR
    _RESOLVER = _CRYPTO = _STORE = _MANAGER = _INTERCEPTOR = None


def get_settings() -> Settings:
    return _SETTINGS


def get_key_resolver() -> KeyResolver:
    global _RESOLVER
    if _RESOLVER is None:
        _RESOLVER = KeyResolver(_SETTINGS.DEFAULT_KEY)
        if not _RESOLVER.has_default:
            logger.warning("ATREST_DEFAULT_KEY is not set; only explicit keys will work")
    return _RESOLVER


def get_crypto_service() -> CryptoService:
    global _CRYPTO
    if _CRYPTO is None:
        _CRYPTO = CryptoService(get_key_resolver(), chunk_size=_SETTINGS.CHUNK_SIZE)
    return _CRYPTO


def get_asset_store() -> LocalAssetStore:
    global _STORE
    if _STORE is None:
        _STORE = LocalAssetStore(_SETTINGS.STORAGE_ROOT)
        logger.info(f"Asset store root: {_STORE.root}")
    return _STORE


def get_asset_manager() -> AssetEncryptionManager:
    global _MANAGER
    if _MANAGER is None:
        _MANAGER = AssetEncryptionManager(get_asset_store(), get_crypto_service())
    return _MANAGER


def _log_time_limit(budget: Optional[int]) -> None:
    if budget is None:
        logger.debug("Download time limit: unlimited")
    else:
        logger.debug(f"Download time limit extended to {budget}s")


def get_download_interceptor() -> StreamingDownloadInterceptor:
    global _INTERCEPTOR
    if _INTERCEPTOR is None:
        _INTERCEPTOR = StreamingDownloadInterceptor(
            get_asset_manager(),
            DeliveryOptions.from_settings(_SETTINGS),
            time_limit_hook=_log_time_limit,
        )
    return _INTERCEPTOR
