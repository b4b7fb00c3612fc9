"""Handle ownership shared by every endpoint variant."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Self

if TYPE_CHECKING:
    from types import TracebackType

    from backplane.endpoints.descriptor import EndpointDescriptor

logger = logging.getLogger(__name__)


class OwnedEndpoint:
    """An endpoint that exclusively owns one OS handle.

    Subclasses release the handle in :meth:`_release`.  :meth:`close`
    is idempotent; only the first call touches the handle.
    """

    def __init__(self, descriptor: EndpointDescriptor | None) -> None:
        self._descriptor = descriptor
        self._closed = False

    @property
    def descriptor(self) -> EndpointDescriptor | None:
        """The descriptor this endpoint was opened from."""
        return self._descriptor

    @property
    def closed(self) -> bool:
        """True once :meth:`close` has been called."""
        return self._closed

    def close(self) -> None:
        """Release the underlying handle.

        Raises:
            OSError: If the operating system reports a failure while
                releasing the handle.  The endpoint is considered closed
                regardless.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._release()
        finally:
            logger.debug("Closed %s", self)

    def _release(self) -> None:
        """Release the OS handle.  Overridden by handle-owning variants."""

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
        state = "closed" if self._closed else "open"
        target = str(self._descriptor) if self._descriptor is not None else "null"
        return f"<{type(self).__name__} {target} ({state})>"
