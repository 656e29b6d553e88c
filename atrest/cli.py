"""CLI for atrest file encryption."""
import json
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from atrest.adapters.local_storage.store import LocalAssetStore
from atrest.dependencies import get_crypto_service
from atrest.domain.assets.manager import AssetEncryptionManager
from atrest.domain.assets.models import StoredAsset
from atrest.domain.delivery.sinks import StreamResponseSink
from atrest.domain.keys.models import RawSecret
from atrest.errors import AtRestError


def _manager_for(path: Path) -> Tuple[AssetEncryptionManager, StoredAsset]:
    store = LocalAssetStore(str(path.parent))
    try:
        crypto = get_crypto_service()
    except AtRestError as e:
        raise click.ClickException(str(e))
    return AssetEncryptionManager(store, crypto), StoredAsset(name=path.name)


def _key_provider(key_env: Optional[str]):
    if not key_env:
        return None
    secret = os.getenv(key_env)
    if not secret:
        raise click.ClickException(f"Environment variable {key_env} is empty")
    return lambda: RawSecret(secret)


@click.group()
def cli():
    """atrest at-rest encryption CLI."""
    pass


@cli.command("encrypt")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--key-env", default=None, help="Read the secret from this env var instead of ATREST_DEFAULT_KEY")
def encrypt_cmd(path: Path, key_env: Optional[str]):
    """Encrypt PATH in place (it becomes PATH.enc)."""
    manager, asset = _manager_for(path)
    try:
        changed = manager.encrypt_if_needed(asset, _key_provider(key_env))
    except AtRestError as e:
        raise click.ClickException(str(e))

    if changed:
        click.echo(f"✓ Encrypted -> {path.parent / asset.name}")
    else:
        click.echo(f"Already encrypted: {path}")


@cli.command("decrypt")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write plaintext here instead of stdout")
@click.option("--key-env", default=None, help="Read the secret from this env var instead of ATREST_DEFAULT_KEY")
def decrypt_cmd(path: Path, output: Optional[Path], key_env: Optional[str]):
    """Decrypt PATH to stdout (or --output). The stored file is left untouched."""
    manager, asset = _manager_for(path)
    if not manager.is_encrypted(asset):
        raise click.ClickException(f"Not an encrypted asset (no .enc suffix): {path}")

    try:
        if output is None:
            sink = StreamResponseSink(sys.stdout.buffer)
            manager.decrypt_to(asset, sink, _key_provider(key_env))
            sink.finish()
            return

        store = LocalAssetStore(str(output.resolve().parent))
        with store.write_atomic(output.name) as f:
            written = manager.decrypt_to(asset, f, _key_provider(key_env))
    except AtRestError as e:
        raise click.ClickException(str(e))

    click.echo(f"✓ Decrypted {written} bytes -> {output}", err=True)


@cli.command("inspect")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def inspect_cmd(path: Path):
    """Show framing information without decrypting."""
    manager, asset = _manager_for(path)
    try:
        info = {
            "name": asset.name,
            "original_name": manager.original_name(asset),
            "encrypted": manager.is_encrypted(asset),
            "stored_size": path.stat().st_size,
        }
        if info["encrypted"]:
            with manager.open_source(asset) as source:
                header = manager.crypto.read_header(source)
            info["version"] = header.version
            info["chunk_size"] = header.chunk_size
            info["plaintext_size"] = header.plaintext_length(info["stored_size"])
    except AtRestError as e:
        raise click.ClickException(str(e))

    click.echo(json.dumps(info, indent=2))


if __name__ == "__main__":
    cli()
