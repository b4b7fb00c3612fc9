"""Endpoint descriptors, the four transports, and the endpoint factory.

This package provides:

- :class:`EndpointDescriptor` and :func:`parse_descriptor`: which
  transport to open and where.
- Input variants (:class:`FileSource`, :class:`TcpSource`,
  :class:`UdpSource`, :class:`NullSource`) with ``read_into``.
- Output variants (:class:`FileSink`, :class:`TcpSink`,
  :class:`UdpSink`, :class:`NullSink`) with ``send``.
- :func:`open_input` / :func:`open_output`: the factory.
"""

from backplane.endpoints.descriptor import (
    Direction,
    EndpointDescriptor,
    EndpointKind,
    FileParams,
    TcpParams,
    UdpParams,
    file_endpoint,
    parse_descriptor,
    tcp_client_endpoint,
    tcp_server_endpoint,
    udp_endpoint,
)
from backplane.endpoints.errors import (
    AcceptError,
    BackplaneError,
    BindError,
    ConnectError,
    DescriptorParseError,
    EndpointIOError,
    EndpointNotFoundError,
    InvalidAddressError,
    InvalidStateError,
    OpenError,
    ReadError,
    ReadIOError,
    SettingsError,
    WriteError,
    WriteIOError,
)
from backplane.endpoints.factory import open_endpoint, open_input, open_output
from backplane.endpoints.readable import (
    FileSource,
    NullSource,
    ReadableEndpoint,
    TcpSource,
    UdpSource,
)
from backplane.endpoints.writable import (
    FileSink,
    NullSink,
    TcpSink,
    UdpSink,
    WritableEndpoint,
)

__all__ = [
    "AcceptError",
    "BackplaneError",
    "BindError",
    "ConnectError",
    "DescriptorParseError",
    "Direction",
    "EndpointDescriptor",
    "EndpointIOError",
    "EndpointKind",
    "EndpointNotFoundError",
    "FileParams",
    "FileSink",
    "FileSource",
    "InvalidAddressError",
    "InvalidStateError",
    "NullSink",
    "NullSource",
    "OpenError",
    "ReadError",
    "ReadIOError",
    "ReadableEndpoint",
    "SettingsError",
    "TcpParams",
    "TcpSink",
    "TcpSource",
    "UdpParams",
    "UdpSink",
    "UdpSource",
    "WritableEndpoint",
    "WriteError",
    "WriteIOError",
    "file_endpoint",
    "open_endpoint",
    "open_input",
    "open_output",
    "parse_descriptor",
    "tcp_client_endpoint",
    "tcp_server_endpoint",
    "udp_endpoint",
]
