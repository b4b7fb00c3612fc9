"""Endpoint error types for open, read and write failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backplane.endpoints.descriptor import EndpointDescriptor


class BackplaneError(Exception):
    """Base exception for backplane errors."""


# ---------------------------------------------------------------------------
# Open failures
# ---------------------------------------------------------------------------


class OpenError(BackplaneError):
    """An endpoint could not be opened.

    Carries the descriptor that failed and the underlying cause so the
    message names both the endpoint and the reason.
    """

    reason = "open failed"

    def __init__(
        self,
        descriptor: EndpointDescriptor | None,
        cause: BaseException | str | None = None,
    ) -> None:
        """Initialise an open error.

        Args:
            descriptor: The endpoint being opened, if known.
            cause: The underlying ``OSError`` or a short description.
        """
        self.descriptor = descriptor
        self.cause = cause
        target = str(descriptor) if descriptor is not None else "<endpoint>"
        message = f"{target}: {self.reason}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class EndpointNotFoundError(OpenError):
    """The file named by a descriptor does not exist."""

    reason = "not found"


class BindError(OpenError):
    """A socket could not be bound (for example, address in use)."""

    reason = "bind failed"


class ConnectError(OpenError):
    """A TCP client could not connect to its peer."""

    reason = "connect failed"


class AcceptError(OpenError):
    """A TCP server failed while accepting its client."""

    reason = "accept failed"


class InvalidAddressError(OpenError):
    """A destination address could not be parsed."""

    reason = "invalid address"


class EndpointIOError(OpenError):
    """Any other OS-level failure while opening an endpoint."""

    reason = "I/O error"


# ---------------------------------------------------------------------------
# Read / write failures
# ---------------------------------------------------------------------------


class ReadError(BackplaneError):
    """Reading from an input endpoint failed."""


class ReadIOError(ReadError):
    """The transport reported an error (peer reset, closed socket, ...)."""


class InvalidStateError(ReadError):
    """The endpoint cannot be read in its current state.

    Raised for the null source and for endpoints that were already
    closed, so a misconfiguration is never mistaken for end-of-data.
    """


class WriteError(BackplaneError):
    """Writing to an output endpoint failed."""


class WriteIOError(WriteError):
    """The transport rejected the write (I/O error, oversized datagram, ...)."""


class SettingsError(BackplaneError):
    """Stored settings are malformed or inconsistent."""


class DescriptorParseError(ValueError):
    """Endpoint descriptor text is malformed or has an out-of-range field."""
