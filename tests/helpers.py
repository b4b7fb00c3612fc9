"""Shared test utilities for backplane tests."""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from backplane.endpoints.errors import ReadError, WriteIOError


class FakeSource:
    """In-memory input yielding a fixed sequence of chunks.

    Items may be ``bytes`` (returned as one read) or an exception
    instance (raised by that read).  After the last item every read
    returns 0, like a file at end-of-data.
    """

    def __init__(
        self,
        items: Iterable[bytes | ReadError],
        *,
        message_oriented: bool = False,
        close_error: OSError | None = None,
    ) -> None:
        self.items = list(items)
        self.message_oriented = message_oriented
        self.descriptor = None
        self.reads = 0
        self.closed = False
        self.close_calls = 0
        self._close_error = close_error

    def read_into(self, buffer: bytearray, requested_length: int) -> int:
        self.reads += 1
        if not self.items:
            return 0
        item = self.items.pop(0)
        if isinstance(item, ReadError):
            raise item
        if self.message_oriented:
            buffer.clear()
        buffer.extend(item)
        return len(item)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        if self._close_error is not None:
            raise self._close_error


class FakeSink:
    """In-memory output recording every chunk it accepts.

    ``fail_on`` lists the 1-based send attempts that raise
    :class:`WriteIOError` instead of accepting the chunk.
    """

    def __init__(
        self,
        *,
        fail_on: Iterable[int] = (),
        close_error: OSError | None = None,
    ) -> None:
        self.received: list[bytes] = []
        self.attempts = 0
        self.fail_on = set(fail_on)
        self.descriptor = None
        self.closed = False
        self.close_calls = 0
        self._close_error = close_error

    def send(self, data: bytes) -> int:
        self.attempts += 1
        if self.attempts in self.fail_on:
            msg = f"simulated failure on attempt {self.attempts}"
            raise WriteIOError(msg)
        self.received.append(bytes(data))
        return len(data)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        if self._close_error is not None:
            raise self._close_error


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    """Return a loopback port that was free a moment ago."""
    with socket.socket(socket.AF_INET, kind) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def connect_with_retry(port: int, *, timeout: float = 5.0) -> socket.socket:
    """Connect to a loopback server that may not be listening yet."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=timeout)
        except ConnectionRefusedError:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.01)


class BackgroundCall:
    """Run a blocking call on a daemon thread and collect its outcome."""

    def __init__(self, func: Callable[..., Any], *args: Any) -> None:
        self.result: Any = None
        self.error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, args=(func, args), daemon=True)
        self._thread.start()

    def _run(self, func: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            self.result = func(*args)
        except BaseException as e:
            self.error = e

    def join(self, timeout: float = 5.0) -> Any:
        self._thread.join(timeout)
        if self._thread.is_alive():
            msg = "background call did not finish"
            raise TimeoutError(msg)
        if self.error is not None:
            raise self.error
        return self.result

    def still_running(self, *, after: float) -> bool:
        """True if the call has not finished *after* seconds."""
        self._thread.join(after)
        return self._thread.is_alive()


def recv_exactly(sock: socket.socket, length: int) -> bytes:
    """Receive until *length* bytes have arrived or the peer closes."""
    chunks = bytearray()
    while len(chunks) < length:
        data = sock.recv(min(65536, length - len(chunks)))
        if not data:
            break
        chunks.extend(data)
    return bytes(chunks)
