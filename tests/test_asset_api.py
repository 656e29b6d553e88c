"""HTTP upload/download through the FastAPI app."""
import asyncio
import os
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

from atrest.api.assets import router as assets_router
from atrest.domain.assets.models import StoredAsset
from atrest.domain.crypto.framing import HEADER_SIZE, MAGIC_BYTES
from atrest.main import app


@pytest.fixture
def client(configured):
    with TestClient(app) as c:
        yield c


def _upload(client, path, data):
    response = client.put(f"/assets/{path}", content=data)
    assert response.status_code == 201, response.text
    return response.json()


def test_upload_is_encrypted_at_rest(client, configured):
    data = os.urandom(1024)
    body = _upload(client, "docs/report.pdf", data)

    assert body == {"name": "report.pdf.enc", "path": "docs/report.pdf.enc", "encrypted": True}
    store = configured.get_asset_store()
    assert not store.exists("docs/report.pdf")
    on_disk = store.full_path("docs/report.pdf.enc").read_bytes()
    assert on_disk.startswith(MAGIC_BYTES)
    assert data not in on_disk


def test_download_decrypts(client):
    data = os.urandom(1024)
    _upload(client, "docs/report.pdf", data)

    response = client.get("/assets/docs/report.pdf.enc")

    assert response.status_code == 200
    assert response.content == data
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="report.pdf.enc"'
    assert response.headers["cache-control"] == "private, no-cache, no-store"
    assert response.headers["content-transfer-encoding"] == "binary"
    assert "content-length" not in response.headers


def test_download_by_original_name(client):
    _upload(client, "photo.png", b"\x89PNG fake image")
    response = client.get("/assets/photo.png")
    assert response.status_code == 200
    assert response.content == b"\x89PNG fake image"
    assert response.headers["content-type"] == "image/png"


def test_empty_upload_round_trips(client):
    _upload(client, "empty.txt", b"")
    response = client.get("/assets/empty.txt.enc")
    assert response.status_code == 200
    assert response.content == b""


def test_missing_asset_is_404(client):
    response = client.get("/assets/nope.pdf")
    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "NOT_FOUND"


def test_unencrypted_file_passes_through(client, configured):
    configured.get_asset_store().write_bytes("legacy/readme.txt", b"old plaintext")
    response = client.get("/assets/legacy/readme.txt")
    assert response.status_code == 200
    assert response.content == b"old plaintext"


def test_tampered_file_is_inline_text_error(client, configured):
    _upload(client, "secret.pdf", b"A" * 100)
    path = configured.get_asset_store().full_path("secret.pdf.enc")
    blob = bytearray(path.read_bytes())
    blob[HEADER_SIZE + 1] ^= 0xFF
    path.write_bytes(bytes(blob))

    response = client.get("/assets/secret.pdf.enc")

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["content-disposition"] == "inline"
    assert "A" * 100 not in response.text


def test_upload_with_enc_suffix_rejected(client):
    response = client.put("/assets/sneaky.pdf.enc", content=b"not really ciphertext")
    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_NAME"


def test_path_escaping_root_is_not_served(client):
    response = client.get("/assets/..%2F..%2Fetc%2Fpasswd")
    assert response.status_code == 404


def test_test_mode_serves_raw_bytes(configured, settings_for):
    configured.configure(settings_for(MODE="test"))
    with TestClient(app) as client:
        _upload(client, "fixture.bin", b"deterministic")
        response = client.get("/assets/fixture.bin.enc")

    assert response.status_code == 200
    assert response.content.startswith(MAGIC_BYTES)
    assert response.content != b"deterministic"


def test_health_live(client):
    assert client.get("/health/live").json()["status"] == "ok"


def test_health_ready(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"] == {"default_key": "ok", "storage": "ok"}


def test_health_ready_without_key(configured, settings_for):
    configured.configure(settings_for(DEFAULT_KEY=None))
    with TestClient(app) as client:
        response = client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["detail"]["checks"]["default_key"] == "missing"


def test_failed_encryption_leaves_no_plaintext(configured, settings_for):
    configured.configure(settings_for(DEFAULT_KEY=None))
    store = configured.get_asset_store()
    with TestClient(app) as client:
        put = client.put("/assets/secret.txt", content=b"TOP SECRET PLAINTEXT")
        get = client.get("/assets/secret.txt")

    assert put.status_code == 500
    assert not store.exists("secret.txt")
    assert not store.exists("secret.txt.enc")
    assert list(store.root.iterdir()) == []
    assert get.status_code == 404
    assert b"TOP SECRET" not in get.content


def test_upload_escaping_root_is_rejected(client, configured):
    response = client.put("/assets/..%2F..%2Fescaped.txt", content=b"x")
    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "INVALID_NAME"
    assert not (configured.get_asset_store().root.parent / "escaped.txt").exists()


def test_large_upload_is_persisted_off_the_event_loop(client, monkeypatch):
    calls = []
    original = assets_router.run_in_threadpool

    async def recording(func, *args, **kwargs):
        calls.append(func)
        return await original(func, *args, **kwargs)

    monkeypatch.setattr(assets_router, "run_in_threadpool", recording)
    data = os.urandom(assets_router.SPOOL_MAX_SIZE + 4096)

    _upload(client, "big.bin", data)

    assert assets_router.persist_upload in calls
    assert client.get("/assets/big.bin").content == data


def test_dropped_download_releases_source(store, interceptor, manager):
    store.write_bytes("report.pdf", b"R" * 100)
    manager.encrypt_if_needed(StoredAsset(name="report.pdf"))

    handles = []
    original_open = store.open_read

    @contextmanager
    def tracking_open(path):
        with original_open(path) as fh:
            handles.append(fh)
            yield fh

    store.open_read = tracking_open
    response = assets_router.download_asset("report.pdf.enc", store=store, interceptor=interceptor)
    assert not handles[0].closed

    # Response is never iterated; only its background task runs
    asyncio.run(response.background())

    assert handles[0].closed
