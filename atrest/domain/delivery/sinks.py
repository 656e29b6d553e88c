"""Response sinks for file delivery.

A sink collects headers until the first body write, then streams bytes.
Once ``finish()`` is called the response is over and every further write
raises, so a host cannot send the same file a second time.
"""
from typing import BinaryIO

from starlette.datastructures import MutableHeaders

from atrest.errors import ResponseAlreadySentError


class ResponseSink:
    """Base response sink; subclasses implement ``_write_body``."""

    def __init__(self):
        self.headers = MutableHeaders()
        self.headers_sent = False
        self.finished = False
        self.bytes_written = 0

    def write(self, data: bytes) -> int:
        if self.finished:
            raise ResponseAlreadySentError("Response already finished")
        if not self.headers_sent:
            self._send_headers()
            self.headers_sent = True
        self._write_body(data)
        self.bytes_written += len(data)
        return len(data)

    def finish(self) -> None:
        if self.finished:
            raise ResponseAlreadySentError("Response already finished")
        if not self.headers_sent:
            self._send_headers()
            self.headers_sent = True
        self.finished = True
        self._close()

    def _send_headers(self) -> None:
        pass

    def _write_body(self, data: bytes) -> None:
        raise NotImplementedError

    def _close(self) -> None:
        pass


class StreamResponseSink(ResponseSink):
    """Writes the body straight to a binary stream (stdout, a socket file, BytesIO)."""

    def __init__(self, stream: BinaryIO):
        super().__init__()
        self.stream = stream

    def _write_body(self, data: bytes) -> None:
        self.stream.write(data)

    def _close(self) -> None:
        flush = getattr(self.stream, "flush", None)
        if flush:
            flush()
