"""Byte router: read chunks from one input and fan them out to N outputs.

The :class:`Router` runs a single sequential loop::

    read chunk from input  ->  send chunk to output 1, 2, ..., N  ->  repeat

It has two states, :attr:`RouterState.RUNNING` and
:attr:`RouterState.STOPPED`.  End-of-data or a read error on the input
stops the router; a write error on one output is recorded and routing
continues to the remaining outputs (and to the failed output again on
the next chunk).

A router exclusively owns its endpoints and closes all of them when it
stops.  Routers share no state, so several may run on separate threads.
Reads, accepts and writes block without timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Self

from backplane.endpoints.errors import ReadError, WriteError
from backplane.endpoints.factory import open_input, open_output

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from types import TracebackType

    from backplane.endpoints.descriptor import EndpointDescriptor
    from backplane.endpoints.readable import ReadableEndpoint
    from backplane.endpoints.writable import WritableEndpoint

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class RouterState(Enum):
    """Lifecycle state of a router."""

    RUNNING = "running"
    STOPPED = "stopped"


class StopReason(Enum):
    """Why a router stopped."""

    END_OF_DATA = "end-of-data"
    READ_ERROR = "read-error"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class OutputFailure:
    """A write failure on one output for one chunk."""

    output_index: int
    """Position of the output in configuration order (0-based)."""

    chunk: int
    """Number of the chunk that failed (1-based)."""

    error: WriteError
    """The error raised by the output."""

    descriptor: EndpointDescriptor | None = None
    """Descriptor of the failing output, if known."""


@dataclass(slots=True)
class OutputStats:
    """Delivery counters for a single output."""

    bytes_written: int = 0
    chunks_written: int = 0
    failures: int = 0
    healthy: bool = True
    """``False`` if the most recent write to this output failed."""

    def to_dict(self) -> dict[str, object]:
        """Convert to JSON-friendly dict."""
        return {
            "bytes_written": self.bytes_written,
            "chunks_written": self.chunks_written,
            "failures": self.failures,
            "healthy": self.healthy,
        }


@dataclass(slots=True)
class RouterStats:
    """Counters for a routing session."""

    chunks: int = 0
    bytes_read: int = 0
    outputs: list[OutputStats] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Convert to JSON-friendly dict."""
        return {
            "chunks": self.chunks,
            "bytes_read": self.bytes_read,
            "outputs": [o.to_dict() for o in self.outputs],
        }


class Router:
    """Fan-out router owning one input and one or more outputs."""

    def __init__(
        self,
        input_endpoint: ReadableEndpoint,
        outputs: Sequence[WritableEndpoint],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_output_error: Callable[[OutputFailure], None] | None = None,
    ) -> None:
        """Initialise a running router.

        Args:
            input_endpoint: An opened input endpoint.
            outputs: Opened output endpoints, in delivery order.
            chunk_size: Bytes requested from the input per step.
            on_output_error: Called with an :class:`OutputFailure` each
                time an output rejects a chunk.

        Raises:
            ValueError: If *outputs* is empty or *chunk_size* is not
                positive.
        """
        if not outputs:
            msg = "Router needs at least one output"
            raise ValueError(msg)
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self._input = input_endpoint
        self._outputs: tuple[WritableEndpoint, ...] = tuple(outputs)
        self._chunk_size = chunk_size
        self._on_output_error = on_output_error
        self._buffer = bytearray()
        self._state = RouterState.RUNNING
        self._stop_reason: StopReason | None = None
        self._stats = RouterStats(outputs=[OutputStats() for _ in self._outputs])
        self._failures: list[OutputFailure] = []
        self._close_errors: list[OSError] = []
        self._closed = False

    @classmethod
    def from_descriptors(
        cls,
        input_descriptor: EndpointDescriptor | str,
        output_descriptors: Iterable[EndpointDescriptor | str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_output_error: Callable[[OutputFailure], None] | None = None,
    ) -> Router:
        """Open every endpoint through the factory and build a router.

        The input is opened first, then outputs in order.  If any open
        fails, the endpoints already opened are closed before the error
        propagates.

        Raises:
            DescriptorParseError: If a descriptor string is malformed.
            OpenError: If an endpoint cannot be opened.
            ValueError: If *output_descriptors* is empty.
        """
        output_descriptors = list(output_descriptors)
        if not output_descriptors:
            msg = "Router needs at least one output"
            raise ValueError(msg)
        input_endpoint = open_input(input_descriptor)
        outputs: list[WritableEndpoint] = []
        try:
            for descriptor in output_descriptors:
                outputs.append(open_output(descriptor))
        except BaseException:
            for endpoint in (input_endpoint, *outputs):
                try:
                    endpoint.close()
                except OSError:
                    logger.warning("Failed to close %r after open failure", endpoint)
            raise
        return cls(
            input_endpoint, outputs, chunk_size=chunk_size, on_output_error=on_output_error
        )

    # -- Properties ---------------------------------------------------------

    @property
    def input(self) -> ReadableEndpoint:
        """The input endpoint."""
        return self._input

    @property
    def outputs(self) -> tuple[WritableEndpoint, ...]:
        """The output endpoints, in delivery order."""
        return self._outputs

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def state(self) -> RouterState:
        """Current lifecycle state."""
        return self._state

    @property
    def stop_reason(self) -> StopReason | None:
        """Why the router stopped, or ``None`` while running."""
        return self._stop_reason

    @property
    def stats(self) -> RouterStats:
        """Session counters."""
        return self._stats

    @property
    def failures(self) -> list[OutputFailure]:
        """Every output failure recorded so far, oldest first."""
        return list(self._failures)

    @property
    def close_errors(self) -> list[OSError]:
        """Errors raised while closing endpoints."""
        return list(self._close_errors)

    def output_healthy(self, index: int) -> bool:
        """True if the last write attempted on output *index* succeeded."""
        return self._stats.outputs[index].healthy

    # -- Routing ------------------------------------------------------------

    def step(self) -> bool:
        """Route one chunk.

        Returns:
            ``True`` if a chunk was read and fanned out, ``False`` if the
            router is (now) stopped.

        Raises:
            ReadError: If the input fails.  The router is stopped and
                all endpoints are closed before the error propagates.
        """
        if self._state is RouterState.STOPPED:
            return False

        self._buffer.clear()
        try:
            count = self._input.read_into(self._buffer, self._chunk_size)
        except ReadError as e:
            if self._state is RouterState.STOPPED:
                # Closed from another thread while blocked in the read.
                return False
            logger.error("Input %s failed: %s", self._input.descriptor, e)
            self._stop(StopReason.READ_ERROR)
            raise

        if self._state is RouterState.STOPPED:
            return False
        if count == 0 and not self._input.message_oriented:
            self._stop(StopReason.END_OF_DATA)
            return False

        self._stats.chunks += 1
        self._stats.bytes_read += count
        self._fan_out(bytes(self._buffer))
        return True

    def _fan_out(self, chunk: bytes) -> None:
        chunk_number = self._stats.chunks
        logger.debug("Chunk %d: %d bytes", chunk_number, len(chunk))
        for index, output in enumerate(self._outputs):
            stats = self._stats.outputs[index]
            try:
                accepted = output.send(chunk)
            except WriteError as e:
                stats.failures += 1
                stats.healthy = False
                failure = OutputFailure(
                    output_index=index,
                    chunk=chunk_number,
                    error=e,
                    descriptor=output.descriptor,
                )
                self._failures.append(failure)
                logger.warning(
                    "Output %d (%s) failed on chunk %d: %s",
                    index,
                    output.descriptor,
                    chunk_number,
                    e,
                )
                if self._on_output_error is not None:
                    try:
                        self._on_output_error(failure)
                    except Exception:
                        logger.exception("Output error callback failed for output %d", index)
                continue
            if not stats.healthy:
                logger.info("Output %d (%s) recovered", index, output.descriptor)
            stats.healthy = True
            stats.bytes_written += accepted
            stats.chunks_written += 1

    def run(self) -> RouterStats:
        """Route chunks until the input ends, then close everything.

        Returns:
            The session statistics.

        Raises:
            ReadError: If the input fails.  Endpoints are closed first.
        """
        logger.info(
            "Routing %s -> [%s]",
            self._input.descriptor,
            ", ".join(str(o.descriptor) for o in self._outputs),
        )
        try:
            while self.step():
                pass
        finally:
            self.close()
        logger.info(
            "Router stopped (%s) after %d chunks, %d bytes",
            self._stop_reason.value if self._stop_reason else "unknown",
            self._stats.chunks,
            self._stats.bytes_read,
        )
        return self._stats

    # -- Teardown -----------------------------------------------------------

    def _stop(self, reason: StopReason) -> None:
        self._state = RouterState.STOPPED
        self._stop_reason = reason
        self.close()

    def close(self) -> list[OSError]:
        """Stop the router and close every endpoint, best-effort.

        Close failures are logged and collected; they never replace the
        reason the router stopped.  Safe to call more than once and from
        another thread to abandon a blocked session.

        Returns:
            The errors raised while closing endpoints.
        """
        if self._state is RouterState.RUNNING:
            self._state = RouterState.STOPPED
            self._stop_reason = StopReason.CLOSED
        if self._closed:
            return list(self._close_errors)
        self._closed = True
        for endpoint in (self._input, *self._outputs):
            try:
                endpoint.close()
            except OSError as e:
                logger.warning("Failed to close %r: %s", endpoint, e)
                self._close_errors.append(e)
        return list(self._close_errors)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<Router {self._input.descriptor} -> {len(self._outputs)} outputs "
            f"({self._state.value})>"
        )
