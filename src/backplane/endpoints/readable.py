"""Input endpoints: byte sources the router reads from.

Every source exposes the same blocking call::

    count = source.read_into(buffer, requested_length)

with transport-specific semantics:

- :class:`FileSource` and :class:`TcpSource` append up to
  *requested_length* bytes to *buffer*.  Short reads are normal.  A
  return of ``0`` means end-of-data and repeats on every later call.
- :class:`UdpSource` replaces the contents of *buffer* with exactly one
  datagram.  *requested_length* is ignored; zero-length datagrams are
  valid and are not end-of-data.
- :class:`NullSource` always raises :class:`InvalidStateError`.

The set of sources is closed: :data:`ReadableEndpoint` is the union of
the four classes.
"""

from __future__ import annotations

import contextlib
import logging
import socket
from typing import TYPE_CHECKING, BinaryIO

from backplane.endpoints.base import OwnedEndpoint
from backplane.endpoints.errors import InvalidStateError, ReadIOError

if TYPE_CHECKING:
    from collections.abc import Callable

    from backplane.endpoints.descriptor import EndpointDescriptor

logger = logging.getLogger(__name__)

# Largest payload a single UDP datagram can carry (IPv4 length field).
MAX_DATAGRAM_SIZE = 0xFFFF


def _check_length(requested_length: int) -> None:
    if requested_length < 0:
        msg = f"requested_length must be non-negative, got {requested_length}"
        raise ValueError(msg)


def _read_stream_into(
    read: Callable[[memoryview], int | None],
    buffer: bytearray,
    requested_length: int,
) -> int:
    """Append up to *requested_length* bytes to *buffer* using *read*.

    The buffer is grown in place, filled through a memoryview, then
    trimmed back so only bytes actually read remain visible, including
    when *read* raises.
    """
    old_len = len(buffer)
    buffer.extend(bytes(requested_length))
    count = 0
    try:
        with memoryview(buffer) as view, view[old_len:] as target:
            count = read(target) or 0
    finally:
        del buffer[old_len + count :]
    return count


class FileSource(OwnedEndpoint):
    """Buffered file input.  End of file is end-of-data."""

    message_oriented = False

    def __init__(self, file: BinaryIO, descriptor: EndpointDescriptor | None = None) -> None:
        super().__init__(descriptor)
        self._file = file
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once end of file has been reached."""
        return self._finished

    def read_into(self, buffer: bytearray, requested_length: int) -> int:
        """Append up to *requested_length* bytes from the file to *buffer*.

        Returns:
            Bytes read; ``0`` at (and after) end of file.

        Raises:
            InvalidStateError: If the source has been closed.
            ReadIOError: If the read fails.
        """
        _check_length(requested_length)
        if self._closed:
            msg = f"Read from closed {self!r}"
            raise InvalidStateError(msg)
        if self._finished or requested_length == 0:
            return 0
        try:
            count = _read_stream_into(self._file.readinto, buffer, requested_length)
        except OSError as e:
            msg = f"File read error on {self._descriptor}: {e}"
            raise ReadIOError(msg) from e
        if count == 0:
            self._finished = True
            logger.debug("End of file on %s", self._descriptor)
        return count

    def _release(self) -> None:
        self._file.close()


class TcpSource(OwnedEndpoint):
    """Connected TCP stream input (dialled or accepted).

    An orderly close by the peer is end-of-data; a reset or other
    socket error raises :class:`ReadIOError`.
    """

    message_oriented = False

    def __init__(
        self,
        sock: socket.socket,
        descriptor: EndpointDescriptor | None = None,
    ) -> None:
        super().__init__(descriptor)
        self._sock = sock
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once the peer has closed its side of the connection."""
        return self._finished

    @property
    def socket(self) -> socket.socket:
        """The underlying connected socket."""
        return self._sock

    def read_into(self, buffer: bytearray, requested_length: int) -> int:
        """Append up to *requested_length* received bytes to *buffer*.

        Blocks until at least one byte arrives, the peer closes, or an
        error occurs.

        Returns:
            Bytes read; ``0`` once the peer has closed the connection.

        Raises:
            InvalidStateError: If the source has been closed.
            ReadIOError: On connection reset or any other socket error.
        """
        _check_length(requested_length)
        if self._closed:
            msg = f"Read from closed {self!r}"
            raise InvalidStateError(msg)
        if self._finished or requested_length == 0:
            return 0
        try:
            count = _read_stream_into(
                lambda target: self._sock.recv_into(target, requested_length),
                buffer,
                requested_length,
            )
        except OSError as e:
            msg = f"TCP read error on {self._descriptor}: {e}"
            raise ReadIOError(msg) from e
        if count == 0:
            self._finished = True
            logger.debug("Peer closed %s", self._descriptor)
        return count

    def _release(self) -> None:
        # Wakes any thread blocked in recv on this socket.
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()


class UdpSource(OwnedEndpoint):
    """Bound UDP socket input.  Each read consumes exactly one datagram."""

    message_oriented = True

    def __init__(
        self,
        sock: socket.socket,
        descriptor: EndpointDescriptor | None = None,
    ) -> None:
        super().__init__(descriptor)
        self._sock = sock
        self._last_peer: tuple[str, int] | None = None

    @property
    def local_address(self) -> tuple[str, int]:
        """``(host, port)`` the socket is bound to."""
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def last_peer(self) -> tuple[str, int] | None:
        """Sender of the most recent datagram, if any."""
        return self._last_peer

    def read_into(self, buffer: bytearray, requested_length: int) -> int:
        """Replace the contents of *buffer* with the next datagram.

        *requested_length* is advisory; the datagram's own size decides
        how many bytes are returned.

        Returns:
            Size of the datagram (``0`` for an empty datagram).

        Raises:
            InvalidStateError: If the source has been closed.
            ReadIOError: If the receive fails.
        """
        _check_length(requested_length)
        if self._closed:
            msg = f"Read from closed {self!r}"
            raise InvalidStateError(msg)
        buffer.clear()
        try:
            data, peer = self._sock.recvfrom(MAX_DATAGRAM_SIZE)
        except OSError as e:
            msg = f"UDP read error on {self._descriptor}: {e}"
            raise ReadIOError(msg) from e
        buffer.extend(data)
        self._last_peer = peer[:2]
        return len(data)

    def _release(self) -> None:
        self._sock.close()


class NullSource(OwnedEndpoint):
    """Inert input standing in for "no input configured"."""

    message_oriented = False

    def __init__(self) -> None:
        super().__init__(None)

    def read_into(self, buffer: bytearray, requested_length: int) -> int:
        """Always fails: a null source has nothing to read.

        Raises:
            InvalidStateError: Always.
        """
        msg = "Read from a null source; no input endpoint is configured"
        raise InvalidStateError(msg)


ReadableEndpoint = FileSource | TcpSource | UdpSource | NullSource
"""Closed set of input endpoint variants."""
