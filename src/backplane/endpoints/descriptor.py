"""Endpoint descriptors: which transport to open and with what parameters.

Descriptors have a compact text form used on the command line::

    file:<path>
    tcp_client:<host>:<port>
    tcp_server:<host>:<port>
    udp:<host>:<port>

``str(descriptor)`` produces that form and :func:`parse_descriptor`
reads it back, so the two round-trip.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from backplane.endpoints.errors import DescriptorParseError

_MAX_PORT = 0xFFFF


class EndpointKind(Enum):
    """The four supported endpoint transports.

    The value is the prefix used in the descriptor text form.
    """

    FILE = "file"
    TCP_CLIENT = "tcp_client"
    TCP_SERVER = "tcp_server"
    UDP = "udp"

    @property
    def is_network(self) -> bool:
        """True for kinds addressed by host and port."""
        return self is not EndpointKind.FILE


class Direction(Enum):
    """Which side of the router an endpoint is opened for."""

    READ = "read"
    WRITE = "write"


def _check_host(host: str) -> None:
    if not host:
        msg = "Host must not be empty"
        raise ValueError(msg)


def _check_port(port: int) -> None:
    if isinstance(port, bool) or not isinstance(port, int):
        msg = f"Port must be an integer, got {port!r}"
        raise ValueError(msg)
    if not (0 <= port <= _MAX_PORT):
        msg = f"Port number out of range: {port}"
        raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class FileParams:
    """Path of a file endpoint."""

    path: str

    def __post_init__(self) -> None:
        if not self.path:
            msg = "File path must not be empty"
            raise ValueError(msg)
        # Descriptor text is stripped when parsed.
        if self.path != self.path.strip():
            msg = f"File path must not start or end with whitespace: {self.path!r}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"path": self.path}


@dataclass(frozen=True, slots=True)
class TcpParams:
    """Host and port of a TCP endpoint (client dial or server bind)."""

    host: str
    port: int

    def __post_init__(self) -> None:
        _check_host(self.host)
        _check_port(self.port)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"host": self.host, "port": self.port}


@dataclass(frozen=True, slots=True)
class UdpParams:
    """Host and port of a UDP endpoint.

    For an input this is the local bind address.  For an output it is
    the fixed destination every datagram is sent to.
    """

    host: str
    port: int

    def __post_init__(self) -> None:
        _check_host(self.host)
        _check_port(self.port)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"host": self.host, "port": self.port}


EndpointParams = FileParams | TcpParams | UdpParams

_PARAMS_FOR_KIND: dict[EndpointKind, type] = {
    EndpointKind.FILE: FileParams,
    EndpointKind.TCP_CLIENT: TcpParams,
    EndpointKind.TCP_SERVER: TcpParams,
    EndpointKind.UDP: UdpParams,
}


@dataclass(frozen=True, slots=True)
class EndpointDescriptor:
    """A resolved endpoint: kind plus the parameters needed to open it."""

    kind: EndpointKind
    params: EndpointParams

    def __post_init__(self) -> None:
        expected = _PARAMS_FOR_KIND[self.kind]
        if type(self.params) is not expected:
            msg = (
                f"{self.kind.value} endpoint needs {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )
            raise TypeError(msg)

    @property
    def address(self) -> tuple[str, int] | None:
        """``(host, port)`` for network kinds, ``None`` for files."""
        if isinstance(self.params, FileParams):
            return None
        return self.params.host, self.params.port

    def __str__(self) -> str:
        """Descriptor text that round-trips through :func:`parse_descriptor`."""
        if isinstance(self.params, FileParams):
            return f"{self.kind.value}:{self.params.path}"
        return f"{self.kind.value}:{self.params.host}:{self.params.port}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"kind": self.kind.value, **self.params.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EndpointDescriptor:
        """Reconstruct from JSON-friendly dict.

        Raises:
            DescriptorParseError: If the kind is unknown or a field is
                missing or invalid.
        """
        try:
            kind = EndpointKind(data["kind"])
            if kind is EndpointKind.FILE:
                return cls(kind, FileParams(path=str(data["path"])))
            params_cls = _PARAMS_FOR_KIND[kind]
            return cls(kind, params_cls(host=str(data["host"]), port=data["port"]))
        except (KeyError, TypeError, ValueError) as e:
            msg = f"Invalid endpoint descriptor {data!r}: {e}"
            raise DescriptorParseError(msg) from None


# Convenience constructors


def file_endpoint(path: str) -> EndpointDescriptor:
    """Create a file endpoint descriptor."""
    return EndpointDescriptor(EndpointKind.FILE, FileParams(path=path))


def tcp_client_endpoint(host: str, port: int) -> EndpointDescriptor:
    """Create a TCP client endpoint descriptor."""
    return EndpointDescriptor(EndpointKind.TCP_CLIENT, TcpParams(host=host, port=port))


def tcp_server_endpoint(host: str, port: int) -> EndpointDescriptor:
    """Create a TCP server endpoint descriptor."""
    return EndpointDescriptor(EndpointKind.TCP_SERVER, TcpParams(host=host, port=port))


def udp_endpoint(host: str, port: int) -> EndpointDescriptor:
    """Create a UDP endpoint descriptor."""
    return EndpointDescriptor(EndpointKind.UDP, UdpParams(host=host, port=port))


def _parse_port(text: str, original: str) -> int:
    if not (text.isascii() and text.isdigit()):
        msg = f"Invalid port in {original!r}: {text!r}"
        raise DescriptorParseError(msg)
    port = int(text)
    if port > _MAX_PORT:
        msg = f"Port number out of range in {original!r}: {port}"
        raise DescriptorParseError(msg)
    return port


def parse_descriptor(text: str | EndpointDescriptor) -> EndpointDescriptor:
    """Parse descriptor text into an :class:`EndpointDescriptor`.

    Accepted formats::

        "file:data.bin"               -> file, path "data.bin"
        "tcp_client:127.0.0.1:8000"   -> dial 127.0.0.1:8000
        "tcp_server:0.0.0.0:8000"     -> listen on 0.0.0.0:8000
        "udp:127.0.0.1:8001"          -> UDP bind (input) or destination (output)

    The file path is everything after the first colon.  For network
    kinds the port is everything after the last colon, so IPv6 hosts
    such as ``tcp_client:::1:8000`` parse as host ``::1``.

    If already an ``EndpointDescriptor``, returns it unchanged.

    Args:
        text: Descriptor string or existing descriptor.

    Returns:
        Parsed descriptor.

    Raises:
        DescriptorParseError: If the text is malformed or the port is
            not in 0-65535.
    """
    if isinstance(text, EndpointDescriptor):
        return text

    original = text
    text = text.strip()
    if not text:
        msg = "Endpoint descriptor must not be empty"
        raise DescriptorParseError(msg)

    prefix, sep, rest = text.partition(":")
    if not sep:
        msg = (
            f"Cannot parse endpoint descriptor: {original!r}. "
            "Expected 'file:<path>', 'tcp_client:<host>:<port>', "
            "'tcp_server:<host>:<port>' or 'udp:<host>:<port>'"
        )
        raise DescriptorParseError(msg)

    try:
        kind = EndpointKind(prefix)
    except ValueError:
        msg = f"Unknown endpoint kind {prefix!r} in {original!r}"
        raise DescriptorParseError(msg) from None

    if kind is EndpointKind.FILE:
        if not rest:
            msg = f"File endpoint needs a path: {original!r}"
            raise DescriptorParseError(msg)
        try:
            return file_endpoint(rest)
        except ValueError as e:
            msg = f"Invalid file endpoint {original!r}: {e}"
            raise DescriptorParseError(msg) from None

    host, sep, port_str = rest.rpartition(":")
    if not sep or not host:
        msg = f"Expected '{kind.value}:<host>:<port>', got {original!r}"
        raise DescriptorParseError(msg)
    port = _parse_port(port_str, original)
    return EndpointDescriptor(kind, _PARAMS_FOR_KIND[kind](host=host, port=port))
