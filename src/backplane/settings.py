"""Persistent settings for endpoints and routing sessions.

Two layers of configuration:

- :class:`StreamSettings` keeps one set of parameters per endpoint
  kind, so a caller can choose a kind and open it with whatever
  parameters are configured for it.
- :class:`RouteConfig` describes one routing session: an input
  descriptor, one or more output descriptors and the chunk size.

Every settings class converts to and from a JSON-friendly dict; missing
keys fall back to the defaults.  :func:`load_config` and
:func:`save_config` persist a :class:`RouteConfig` through
:mod:`backplane.serialization`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self

import orjson

from backplane.endpoints.descriptor import (
    EndpointDescriptor,
    EndpointKind,
    file_endpoint,
    parse_descriptor,
    tcp_client_endpoint,
    tcp_server_endpoint,
    udp_endpoint,
)
from backplane.endpoints.errors import DescriptorParseError, SettingsError
from backplane.endpoints.factory import open_input, open_output
from backplane.router import DEFAULT_CHUNK_SIZE
from backplane.serialization import deserialize, serialize

if TYPE_CHECKING:
    from backplane.endpoints.readable import ReadableEndpoint
    from backplane.endpoints.writable import WritableEndpoint

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-kind settings
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FileSettings:
    """Settings for a file endpoint."""

    file_name: str = "data.bin"

    def descriptor(self) -> EndpointDescriptor:
        """Descriptor for the configured file."""
        return file_endpoint(self.file_name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"file_name": self.file_name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileSettings:
        """Reconstruct from JSON-friendly dict."""
        return cls(file_name=str(data.get("file_name", "data.bin")))


@dataclass(slots=True)
class _NetworkSettings:
    ip: str = "127.0.0.1"
    port: int = 8000

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {"ip": self.ip, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Reconstruct from JSON-friendly dict."""
        defaults = cls()
        return cls(
            ip=str(data.get("ip", defaults.ip)),
            port=data.get("port", defaults.port),
        )


@dataclass(slots=True)
class TcpClientSettings(_NetworkSettings):
    """Settings for a TCP client endpoint (the peer to dial)."""

    def descriptor(self) -> EndpointDescriptor:
        """Descriptor dialling the configured peer."""
        return tcp_client_endpoint(self.ip, self.port)


@dataclass(slots=True)
class TcpServerSettings(_NetworkSettings):
    """Settings for a TCP server endpoint (the address to listen on)."""

    def descriptor(self) -> EndpointDescriptor:
        """Descriptor listening on the configured address."""
        return tcp_server_endpoint(self.ip, self.port)


@dataclass(slots=True)
class UdpSettings(_NetworkSettings):
    """Settings for a UDP endpoint."""

    port: int = 8001

    def descriptor(self) -> EndpointDescriptor:
        """Descriptor for the configured UDP address."""
        return udp_endpoint(self.ip, self.port)


@dataclass(slots=True)
class StreamSettings:
    """Parameters for every endpoint kind.

    Example::

        settings = StreamSettings()
        settings.udp.port = 9000
        source = settings.open_input(EndpointKind.UDP)
    """

    file: FileSettings = field(default_factory=FileSettings)
    tcp_client: TcpClientSettings = field(default_factory=TcpClientSettings)
    tcp_server: TcpServerSettings = field(default_factory=TcpServerSettings)
    udp: UdpSettings = field(default_factory=UdpSettings)

    def descriptor_for(self, kind: EndpointKind) -> EndpointDescriptor:
        """Build the descriptor for *kind* from the configured parameters.

        Raises:
            SettingsError: If the configured port is out of range.
        """
        try:
            match kind:
                case EndpointKind.FILE:
                    return self.file.descriptor()
                case EndpointKind.TCP_CLIENT:
                    return self.tcp_client.descriptor()
                case EndpointKind.TCP_SERVER:
                    return self.tcp_server.descriptor()
                case EndpointKind.UDP:
                    return self.udp.descriptor()
        except ValueError as e:
            msg = f"Invalid {kind.value} settings: {e}"
            raise SettingsError(msg) from e
        msg = f"Unknown endpoint kind: {kind!r}"
        raise SettingsError(msg)

    def open_input(self, kind: EndpointKind) -> ReadableEndpoint:
        """Open the configured endpoint of *kind* as an input."""
        return open_input(self.descriptor_for(kind))

    def open_output(self, kind: EndpointKind) -> WritableEndpoint:
        """Open the configured endpoint of *kind* as an output."""
        return open_output(self.descriptor_for(kind))

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "file": self.file.to_dict(),
            "tcp_client": self.tcp_client.to_dict(),
            "tcp_server": self.tcp_server.to_dict(),
            "udp": self.udp.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamSettings:
        """Reconstruct from JSON-friendly dict; absent sections use defaults."""
        return cls(
            file=FileSettings.from_dict(data.get("file", {})),
            tcp_client=TcpClientSettings.from_dict(data.get("tcp_client", {})),
            tcp_server=TcpServerSettings.from_dict(data.get("tcp_server", {})),
            udp=UdpSettings.from_dict(data.get("udp", {})),
        )


# ---------------------------------------------------------------------------
# Routing session
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RouteConfig:
    """One routing session: input, outputs and chunk size."""

    input: EndpointDescriptor
    outputs: tuple[EndpointDescriptor, ...]
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if not self.outputs:
            msg = "A route needs at least one output"
            raise SettingsError(msg)
        if self.chunk_size <= 0:
            msg = f"chunk_size must be positive, got {self.chunk_size}"
            raise SettingsError(msg)

    @classmethod
    def from_strings(
        cls,
        input_text: str,
        output_texts: list[str] | tuple[str, ...],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> RouteConfig:
        """Build a config from descriptor text.

        Raises:
            DescriptorParseError: If any descriptor is malformed.
            SettingsError: If there are no outputs or the chunk size is
                not positive.
        """
        return cls(
            input=parse_descriptor(input_text),
            outputs=tuple(parse_descriptor(t) for t in output_texts),
            chunk_size=chunk_size,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "input": str(self.input),
            "outputs": [str(o) for o in self.outputs],
            "chunk_size": self.chunk_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouteConfig:
        """Reconstruct from JSON-friendly dict.

        Descriptors may be given either as text (``"udp:127.0.0.1:9000"``)
        or as dicts produced by :meth:`EndpointDescriptor.to_dict`.

        Raises:
            SettingsError: If a field is missing or invalid.
        """
        try:
            input_descriptor = _descriptor_from_value(data["input"])
            raw_outputs = data["outputs"]
            if isinstance(raw_outputs, (str, dict)):
                raw_outputs = [raw_outputs]
            outputs = tuple(_descriptor_from_value(v) for v in raw_outputs)
            chunk_size = int(data.get("chunk_size", DEFAULT_CHUNK_SIZE))
        except KeyError as e:
            msg = f"Route config is missing {e.args[0]!r}"
            raise SettingsError(msg) from None
        except (DescriptorParseError, TypeError, ValueError) as e:
            msg = f"Invalid route config: {e}"
            raise SettingsError(msg) from e
        return cls(input=input_descriptor, outputs=outputs, chunk_size=chunk_size)


def _descriptor_from_value(value: Any) -> EndpointDescriptor:
    if isinstance(value, dict):
        return EndpointDescriptor.from_dict(value)
    if isinstance(value, str):
        return parse_descriptor(value)
    msg = f"Expected descriptor text or dict, got {type(value).__name__}"
    raise TypeError(msg)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def save_config(config: RouteConfig, path: str | Path) -> None:
    """Write *config* to *path* as pretty-printed JSON.

    Raises:
        SettingsError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.write_bytes(serialize(config, pretty=True))
    except OSError as e:
        msg = f"Cannot write config {path}: {e}"
        raise SettingsError(msg) from e
    logger.info("Saved route config to %s", path)


def load_config(path: str | Path) -> RouteConfig:
    """Read a :class:`RouteConfig` from a JSON file.

    Raises:
        SettingsError: If the file cannot be read or is malformed.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        msg = f"Cannot read config {path}: {e}"
        raise SettingsError(msg) from e
    try:
        data = deserialize(raw)
    except (orjson.JSONDecodeError, TypeError) as e:
        msg = f"Malformed config {path}: {e}"
        raise SettingsError(msg) from e
    logger.debug("Loaded route config from %s", path)
    return RouteConfig.from_dict(data)
