"""Asset upload and download endpoints."""
import logging
import shutil
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, Iterator

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, StreamingResponse
from starlette.background import BackgroundTask

from atrest.adapters.local_storage.store import LocalAssetStore
from atrest.dependencies import get_asset_manager, get_asset_store, get_download_interceptor
from atrest.domain.assets.manager import AssetEncryptionManager, has_encrypted_suffix
from atrest.domain.assets.models import ENCRYPTED_SUFFIX, StoredAsset
from atrest.domain.delivery.interceptor import StreamingDownloadInterceptor
from atrest.errors import AssetNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)

# Uploads above this size spool to a temp file instead of memory
SPOOL_MAX_SIZE = 1024 * 1024


def _split(path: str) -> StoredAsset:
    directory, _, name = path.rpartition("/")
    return StoredAsset(name=name, directory=directory)


def _resume(first: bytes, body: Iterator[bytes]) -> Iterator[bytes]:
    try:
        yield first
        yield from body
    finally:
        body.close()


def _invalid_name(message: str) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": {"code": "INVALID_NAME", "message": message}})


def locate_asset(path: str, store: LocalAssetStore) -> StoredAsset:
    """Find the stored object for ``path``, which may omit the .enc suffix."""
    asset = _split(path)
    if not store.exists(asset.path) and not has_encrypted_suffix(asset.name):
        encrypted = StoredAsset(name=asset.name + ENCRYPTED_SUFFIX, directory=asset.directory)
        if store.exists(encrypted.path):
            return encrypted
    return asset


def persist_upload(
    store: LocalAssetStore,
    manager: AssetEncryptionManager,
    asset: StoredAsset,
    source: BinaryIO,
) -> None:
    """Write ``source`` to the store and encrypt it. Blocking; run off the event loop.

    If encryption fails the plaintext is removed before the error propagates.
    """
    with store.write_atomic(asset.path) as f:
        shutil.copyfileobj(source, f)

    try:
        # Lifecycle: "after successful persist"
        manager.on_after_write(asset)
    except BaseException:
        store.delete(asset.path)
        logger.error(f"Encryption of upload {asset.path} failed; plaintext removed")
        raise


@router.put("/assets/{path:path}", status_code=201)
async def upload_asset(
    path: str,
    request: Request,
    store: LocalAssetStore = Depends(get_asset_store),
    manager: AssetEncryptionManager = Depends(get_asset_manager),
):
    """Store an upload and encrypt it at rest."""
    asset = _split(path)
    if not asset.name or has_encrypted_suffix(asset.name):
        raise _invalid_name(f"Name must not end with {ENCRYPTED_SUFFIX}")
    try:
        store.full_path(asset.path)
    except AssetNotFoundError:
        raise _invalid_name("Path must stay inside the storage root") from None

    # UploadFile moves spooled writes to the threadpool once they hit disk
    upload = UploadFile(file=SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE))
    try:
        async for chunk in request.stream():
            await upload.write(chunk)
        await upload.seek(0)
        await run_in_threadpool(persist_upload, store, manager, asset, upload.file)
    finally:
        await upload.close()

    return {"name": asset.name, "path": asset.path, "encrypted": manager.is_encrypted(asset)}


@router.get("/assets/{path:path}")
def download_asset(
    path: str,
    store: LocalAssetStore = Depends(get_asset_store),
    interceptor: StreamingDownloadInterceptor = Depends(get_download_interceptor),
):
    """Deliver a stored file, decrypting it on the fly when needed."""
    asset = locate_asset(path, store)
    ctx = interceptor.intercept(asset)

    if ctx.passes_through:
        # Host's normal path: not found, or raw bytes
        if not store.exists(asset.path):
            raise HTTPException(
                status_code=404,
                detail={"error": {"code": "NOT_FOUND", "message": f"Asset not found: {path}"}},
            )
        return FileResponse(store.full_path(asset.path), filename=asset.name)

    body = interceptor.iter_body(ctx)
    # Verify the first chunk before any header goes out, so a bad key or
    # tampered file still turns into a plain-text error page
    first = next(body)
    # Closes the body even when the client leaves before it is iterated
    return StreamingResponse(
        _resume(first, body),
        headers=ctx.headers,
        background=BackgroundTask(body.close),
    )
