"""Endpoint factory: turn a descriptor into an open endpoint.

Each successful open allocates exactly one OS handle (file descriptor or
socket) and hands ownership to the returned endpoint.  Failures raise an
:class:`~backplane.endpoints.errors.OpenError` subclass and never leak a
handle.

All opens block: a TCP client waits for the connection to complete and
a TCP server waits for exactly one client to connect.  There is no
timeout.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import BinaryIO

from backplane.endpoints.descriptor import (
    Direction,
    EndpointDescriptor,
    EndpointKind,
    FileParams,
    TcpParams,
    UdpParams,
    parse_descriptor,
)
from backplane.endpoints.errors import (
    AcceptError,
    BindError,
    ConnectError,
    EndpointIOError,
    EndpointNotFoundError,
    InvalidAddressError,
    OpenError,
)
from backplane.endpoints.readable import (
    FileSource,
    ReadableEndpoint,
    TcpSource,
    UdpSource,
)
from backplane.endpoints.writable import (
    FileSink,
    TcpSink,
    UdpSink,
    WritableEndpoint,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transport setup
# ---------------------------------------------------------------------------


def _open_file(
    descriptor: EndpointDescriptor, params: FileParams, direction: Direction
) -> BinaryIO:
    try:
        if direction is Direction.READ:
            return open(params.path, "rb")
        return open(params.path, "wb", buffering=0)
    except FileNotFoundError as e:
        raise EndpointNotFoundError(descriptor, e) from e
    except OSError as e:
        raise EndpointIOError(descriptor, e) from e


def _dial(descriptor: EndpointDescriptor, params: TcpParams) -> socket.socket:
    logger.info("Connecting to %s:%d", params.host, params.port)
    try:
        return socket.create_connection((params.host, params.port))
    except OSError as e:
        raise ConnectError(descriptor, e) from e


def _accept_one(descriptor: EndpointDescriptor, params: TcpParams) -> socket.socket:
    """Bind, listen, and wait for a single client.

    The listening socket is closed as soon as the client is accepted, so
    later connection attempts to the same address are refused.
    """
    try:
        listener = socket.create_server(
            (params.host, params.port), family=_family_for(params.host), backlog=1
        )
    except OSError as e:
        raise BindError(descriptor, e) from e
    with listener:
        host, port = listener.getsockname()[:2]
        logger.info("Waiting for a client on %s:%d", host, port)
        try:
            conn, peer = listener.accept()
        except OSError as e:
            raise AcceptError(descriptor, e) from e
    logger.info("Accepted client %s:%d on %s", peer[0], peer[1], descriptor)
    return conn


def _bind_udp(
    descriptor: EndpointDescriptor,
    family: socket.AddressFamily,
    address: tuple[str, int],
) -> socket.socket:
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.bind(address)
    except OSError as e:
        sock.close()
        raise BindError(descriptor, e) from e
    return sock


def _family_for(host: str) -> socket.AddressFamily:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return socket.AF_INET
    return socket.AF_INET6 if addr.version == 6 else socket.AF_INET


def _udp_destination(descriptor: EndpointDescriptor, params: UdpParams) -> tuple[str, int]:
    try:
        addr = ipaddress.ip_address(params.host)
    except ValueError as e:
        raise InvalidAddressError(descriptor, f"cannot parse ip {params.host!r}") from e
    return str(addr), params.port


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def open_input(descriptor: EndpointDescriptor | str) -> ReadableEndpoint:
    """Open *descriptor* as an input endpoint.

    Args:
        descriptor: Descriptor or descriptor text.

    Returns:
        The readable endpoint variant for the descriptor's kind.

    Raises:
        DescriptorParseError: If *descriptor* is malformed text.
        OpenError: If the transport cannot be set up.
    """
    descriptor = parse_descriptor(descriptor)
    try:
        match descriptor.params:
            case FileParams() as params:
                endpoint: ReadableEndpoint = FileSource(
                    _open_file(descriptor, params, Direction.READ), descriptor
                )
            case TcpParams() as params if descriptor.kind is EndpointKind.TCP_CLIENT:
                endpoint = TcpSource(_dial(descriptor, params), descriptor)
            case TcpParams() as params:
                endpoint = TcpSource(_accept_one(descriptor, params), descriptor)
            case UdpParams() as params:
                sock = _bind_udp(
                    descriptor, _family_for(params.host), (params.host, params.port)
                )
                endpoint = UdpSource(sock, descriptor)
    except OpenError as e:
        logger.warning("Could not open input %s", e)
        raise
    logger.info("Opened input %s", descriptor)
    return endpoint


def open_output(descriptor: EndpointDescriptor | str) -> WritableEndpoint:
    """Open *descriptor* as an output endpoint.

    A UDP output's host must be a literal IP address; it is validated
    before any socket is created.

    Raises:
        DescriptorParseError: If *descriptor* is malformed text.
        OpenError: If the transport cannot be set up.
    """
    descriptor = parse_descriptor(descriptor)
    try:
        match descriptor.params:
            case FileParams() as params:
                endpoint: WritableEndpoint = FileSink(
                    _open_file(descriptor, params, Direction.WRITE), descriptor
                )
            case TcpParams() as params if descriptor.kind is EndpointKind.TCP_CLIENT:
                endpoint = TcpSink(_dial(descriptor, params), descriptor)
            case TcpParams() as params:
                endpoint = TcpSink(_accept_one(descriptor, params), descriptor)
            case UdpParams() as params:
                destination = _udp_destination(descriptor, params)
                family = _family_for(destination[0])
                wildcard = "::" if family == socket.AF_INET6 else "0.0.0.0"
                sock = _bind_udp(descriptor, family, (wildcard, 0))
                endpoint = UdpSink(sock, destination, descriptor)
    except OpenError as e:
        logger.warning("Could not open output %s", e)
        raise
    logger.info("Opened output %s", descriptor)
    return endpoint


def open_endpoint(
    descriptor: EndpointDescriptor | str,
    direction: Direction,
) -> ReadableEndpoint | WritableEndpoint:
    """Open *descriptor* for the given *direction*."""
    if direction is Direction.READ:
        return open_input(descriptor)
    return open_output(descriptor)
