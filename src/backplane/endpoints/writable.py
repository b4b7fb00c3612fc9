"""Output endpoints: byte sinks the router writes to.

Every sink exposes the same blocking call::

    accepted = sink.send(data)

- :class:`FileSink` and :class:`TcpSink` write all of *data*, retrying
  partial writes, so success always means ``len(data)`` bytes accepted.
- :class:`UdpSink` sends *data* as a single datagram to the destination
  fixed at open time.  Oversized payloads fail at the transport.
- :class:`NullSink` discards *data* and reports it all as accepted.

:data:`WritableEndpoint` is the closed union of the four classes.
"""

from __future__ import annotations

import contextlib
import logging
import socket
from typing import TYPE_CHECKING, BinaryIO

from backplane.endpoints.base import OwnedEndpoint
from backplane.endpoints.errors import WriteIOError

if TYPE_CHECKING:
    from collections.abc import Buffer

    from backplane.endpoints.descriptor import EndpointDescriptor

logger = logging.getLogger(__name__)


class FileSink(OwnedEndpoint):
    """Unbuffered file output; every send reaches the file before returning."""

    def __init__(self, file: BinaryIO, descriptor: EndpointDescriptor | None = None) -> None:
        super().__init__(descriptor)
        self._file = file

    def send(self, data: Buffer) -> int:
        """Write all of *data* to the file.

        Returns:
            ``len(data)``.

        Raises:
            WriteIOError: If the sink is closed or the write fails.
        """
        if self._closed:
            msg = f"Send on closed {self!r}"
            raise WriteIOError(msg)
        with memoryview(data) as view:
            total = view.nbytes
            written = 0
            try:
                # Raw file writes may be partial.
                while written < total:
                    written += self._file.write(view[written:])
                self._file.flush()
            except OSError as e:
                msg = f"File write error on {self._descriptor}: {e}"
                raise WriteIOError(msg) from e
        return total

    def _release(self) -> None:
        self._file.close()


class TcpSink(OwnedEndpoint):
    """Connected TCP stream output (dialled or accepted)."""

    def __init__(
        self,
        sock: socket.socket,
        descriptor: EndpointDescriptor | None = None,
    ) -> None:
        super().__init__(descriptor)
        self._sock = sock

    @property
    def socket(self) -> socket.socket:
        """The underlying connected socket."""
        return self._sock

    def send(self, data: Buffer) -> int:
        """Send all of *data*, blocking until the kernel has accepted it.

        Returns:
            ``len(data)``.

        Raises:
            WriteIOError: If the sink is closed or the connection fails.
        """
        if self._closed:
            msg = f"Send on closed {self!r}"
            raise WriteIOError(msg)
        with memoryview(data) as view:
            try:
                self._sock.sendall(view)
            except OSError as e:
                msg = f"TCP write error on {self._descriptor}: {e}"
                raise WriteIOError(msg) from e
            return view.nbytes

    def _release(self) -> None:
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()


class UdpSink(OwnedEndpoint):
    """UDP output bound to an ephemeral local port with a fixed destination."""

    def __init__(
        self,
        sock: socket.socket,
        destination: tuple[str, int],
        descriptor: EndpointDescriptor | None = None,
    ) -> None:
        super().__init__(descriptor)
        self._sock = sock
        self._destination = destination

    @property
    def destination(self) -> tuple[str, int]:
        """``(host, port)`` every datagram is sent to."""
        return self._destination

    @property
    def local_address(self) -> tuple[str, int]:
        """``(host, port)`` of the local ephemeral socket."""
        host, port = self._sock.getsockname()[:2]
        return host, port

    def send(self, data: Buffer) -> int:
        """Send *data* as one datagram to :attr:`destination`.

        Returns:
            Bytes sent (the whole payload).

        Raises:
            WriteIOError: If the sink is closed, the payload exceeds the
                datagram size limit, or the send fails.
        """
        if self._closed:
            msg = f"Send on closed {self!r}"
            raise WriteIOError(msg)
        try:
            return self._sock.sendto(data, self._destination)
        except OSError as e:
            msg = f"UDP write error on {self._descriptor}: {e}"
            raise WriteIOError(msg) from e

    def _release(self) -> None:
        self._sock.close()


class NullSink(OwnedEndpoint):
    """Inert output that accepts and discards everything."""

    def __init__(self) -> None:
        super().__init__(None)

    def send(self, data: Buffer) -> int:
        """Discard *data*, reporting all of it as accepted."""
        with memoryview(data) as view:
            return view.nbytes


WritableEndpoint = FileSink | TcpSink | UdpSink | NullSink
"""Closed set of output endpoint variants."""
