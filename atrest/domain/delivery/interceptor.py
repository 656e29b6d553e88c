"""Streaming download interceptor.

Runs before the host sends a stored file. Encrypted assets are decrypted on
the fly into the response; everything else is handed back to the host
untouched (PASS_THROUGH).

State machine per request::

    IDLE -> INTERCEPTED -> HEADERS_REWRITTEN -> STREAMING -> COMPLETED
                        \\-> PASS_THROUGH                  \\-> FAILED

Content-Length is omitted by default: the plaintext length differs from the
stored size. With ``emit_content_length`` it is computed exactly from the
framing header; the encrypted size is never reported as content length.
"""
import logging
import math
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from atrest.domain.assets.manager import AssetEncryptionManager
from atrest.domain.assets.models import StoredAsset
from atrest.domain.delivery.sinks import ResponseSink

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
NO_CACHE_HEADERS = {
    "Pragma": "no-cache",
    "Cache-Control": "private, no-cache, no-store",
}
ERROR_HEADERS = {
    "Content-Type": "text/plain",
    "Content-Disposition": "inline",
}


class DeliveryState(str, Enum):
    IDLE = "idle"
    INTERCEPTED = "intercepted"
    HEADERS_REWRITTEN = "headers_rewritten"
    STREAMING = "streaming"
    COMPLETED = "completed"
    PASS_THROUGH = "pass_through"
    FAILED = "failed"


@dataclass
class DeliveryOptions:
    content_disposition: str = "attachment"
    disposition_filename: str = "stored"  # "stored" | "original"
    min_download_bandwidth: Optional[int] = None  # bytes/sec
    emit_content_length: bool = False
    test_mode: bool = False

    @classmethod
    def from_settings(cls, settings) -> "DeliveryOptions":
        return cls(
            content_disposition=settings.CONTENT_DISPOSITION or "attachment",
            disposition_filename=settings.DISPOSITION_FILENAME,
            min_download_bandwidth=settings.MIN_DOWNLOAD_BANDWIDTH,
            emit_content_length=settings.EMIT_CONTENT_LENGTH,
            test_mode=settings.is_test_mode,
        )


@dataclass
class DeliveryContext:
    """Per-request delivery state. Discarded when the response ends."""
    asset: StoredAsset
    state: DeliveryState = DeliveryState.IDLE
    encrypted: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    transfer_budget: Optional[int] = None
    bytes_sent: int = 0

    @property
    def passes_through(self) -> bool:
        return self.state == DeliveryState.PASS_THROUGH


def transfer_budget(encrypted_size: int, min_bandwidth: Optional[int]) -> Optional[int]:
    """Seconds needed at the minimum bandwidth; None means unlimited."""
    if not min_bandwidth or min_bandwidth <= 0:
        return None
    return math.ceil(encrypted_size / min_bandwidth)


def quote_filename(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


class StreamingDownloadInterceptor:
    """Decides how a file is delivered and streams decrypted bytes when needed."""

    def __init__(
        self,
        manager: AssetEncryptionManager,
        options: Optional[DeliveryOptions] = None,
        time_limit_hook: Optional[Callable[[Optional[int]], None]] = None,
    ):
        self.manager = manager
        self.options = options or DeliveryOptions()
        self.time_limit_hook = time_limit_hook

    def intercept(self, asset: StoredAsset) -> DeliveryContext:
        """Move a new context to PASS_THROUGH or HEADERS_REWRITTEN."""
        ctx = DeliveryContext(asset=asset)
        ctx.state = DeliveryState.INTERCEPTED

        # Let the host render its own not-found response
        if not self.manager.store.exists(asset.path):
            logger.debug(f"Pass-through (missing): {asset.path}")
            ctx.state = DeliveryState.PASS_THROUGH
            return ctx

        ctx.encrypted = self.manager.is_encrypted(asset)
        if not ctx.encrypted:
            logger.debug(f"Pass-through (not encrypted): {asset.path}")
            ctx.state = DeliveryState.PASS_THROUGH
            return ctx

        # Test mode delivers raw bytes to keep fixtures deterministic
        if self.options.test_mode:
            logger.debug(f"Pass-through (test mode): {asset.path}")
            ctx.state = DeliveryState.PASS_THROUGH
            return ctx

        encrypted_size = self.manager.store.size(asset.path)
        ctx.headers = self.build_headers(asset)
        ctx.transfer_budget = transfer_budget(encrypted_size, self.options.min_download_bandwidth)
        if self.time_limit_hook:
            self.time_limit_hook(ctx.transfer_budget)
        ctx.state = DeliveryState.HEADERS_REWRITTEN
        return ctx

    def build_headers(self, asset: StoredAsset) -> Dict[str, str]:
        if self.options.disposition_filename == "original":
            filename = self.manager.original_name(asset)
        else:
            filename = asset.name

        mime_type, _ = mimetypes.guess_type(self.manager.original_name(asset))
        disposition = self.options.content_disposition or "attachment"

        headers = {
            "Content-Description": "File Transfer",
            "Content-Disposition": f"{disposition}; filename={quote_filename(filename)}",
            "Content-Type": mime_type or DEFAULT_MIME_TYPE,
            "Content-Transfer-Encoding": "binary",
        }
        if self.options.emit_content_length:
            headers["Content-Length"] = str(self.manager.read_plaintext_length(asset))
        headers.update(NO_CACHE_HEADERS)
        return headers

    def on_before_send_file(self, asset: StoredAsset, sink: ResponseSink) -> DeliveryContext:
        """Run the whole state machine against a synchronous sink.

        On PASS_THROUGH the sink is left untouched for the host. Otherwise the
        sink is finished here, so the host's own send path cannot run again.
        """
        ctx = self.intercept(asset)
        if ctx.passes_through:
            return ctx

        for name, value in ctx.headers.items():
            sink.headers[name] = value

        ctx.state = DeliveryState.STREAMING
        try:
            ctx.bytes_sent = self.manager.decrypt_to(asset, sink)
        except Exception as e:
            ctx.state = DeliveryState.FAILED
            self._revert_headers(sink)
            logger.error(f"Decrypting download failed for {asset.path}: {type(e).__name__}: {e}")
            raise

        sink.finish()
        ctx.state = DeliveryState.COMPLETED
        logger.info(f"Delivered decrypted asset {asset.path} ({ctx.bytes_sent} bytes)")
        return ctx

    def iter_body(self, ctx: DeliveryContext) -> Iterator[bytes]:
        """Generator form of STREAMING for ASGI responses.

        Closing the generator (client disconnect) releases the source handle.
        """
        if ctx.state != DeliveryState.HEADERS_REWRITTEN:
            raise ValueError(f"Cannot stream from state {ctx.state.value}")

        candidate = self.manager.key_candidate(ctx.asset)
        ctx.state = DeliveryState.STREAMING
        try:
            with self.manager.open_source(ctx.asset) as source:
                for chunk in self.manager.crypto.iter_decrypt(source, candidate):
                    ctx.bytes_sent += len(chunk)
                    yield chunk
        except GeneratorExit:
            ctx.state = DeliveryState.FAILED
            logger.warning(f"Download of {ctx.asset.path} aborted after {ctx.bytes_sent} bytes")
            raise
        except Exception as e:
            ctx.state = DeliveryState.FAILED
            logger.error(f"Decrypting download failed for {ctx.asset.path}: {type(e).__name__}: {e}")
            raise
        ctx.state = DeliveryState.COMPLETED

    @staticmethod
    def _revert_headers(sink: ResponseSink) -> None:
        # Once bytes went out the headers can't change; the caller must abort
        if sink.headers_sent:
            return
        if "Content-Length" in sink.headers:
            del sink.headers["Content-Length"]
        for name, value in ERROR_HEADERS.items():
            sink.headers[name] = value
