"""Persist listeners that encrypt asset files after their row is written."""
import logging
from typing import Callable, Optional

from sqlalchemy import event, update
from sqlalchemy.orm.attributes import set_committed_value

from atrest.domain.assets.manager import AssetEncryptionManager
from atrest.domain.keys.models import KeyProvider

logger = logging.getLogger(__name__)

# Given a record, return its key hook (or None for the default key).
# Without one, a record's own `provide_encryption_key` method is used if present.
KeyProviderFor = Callable[[object], Optional[KeyProvider]]


def register_asset_listeners(
    model,
    manager: AssetEncryptionManager,
    key_provider_for: Optional[KeyProviderFor] = None,
    name_attr: str = "filename",
) -> Callable:
    """Encrypt the record's file after every insert/update of ``model``.

    The new stored name is written back in the same transaction. Returns
    the listener so callers can ``event.remove`` it.
    """
    table = model.__table__
    pk = list(table.primary_key.columns)[0]

    def _after_persist(mapper, connection, target):
        if key_provider_for:
            provider = key_provider_for(target)
        else:
            provider = getattr(target, "provide_encryption_key", None)
        asset = target.to_asset(provider)
        if not manager.on_after_write(asset):
            return

        connection.execute(
            update(table)
            .where(pk == getattr(target, pk.key))
            .values({name_attr: asset.name})
        )
        set_committed_value(target, name_attr, asset.name)
        logger.debug(f"{model.__name__} {getattr(target, pk.key)} renamed to {asset.name}")

    event.listen(model, "after_insert", _after_persist)
    event.listen(model, "after_update", _after_persist)
    return _after_persist


def unregister_asset_listeners(model, listener: Callable) -> None:
    for name in ("after_insert", "after_update"):
        if event.contains(model, name, listener):
            event.remove(model, name, listener)
