"""backplane: route bytes between files, TCP and UDP endpoints.

Typical usage::

    from backplane import Router

    with Router.from_descriptors("udp:0.0.0.0:9000", ["file:capture.bin"]) as router:
        router.run()
"""

__version__ = "0.1.0"

from backplane.endpoints import (
    BackplaneError,
    DescriptorParseError,
    Direction,
    EndpointDescriptor,
    EndpointKind,
    OpenError,
    ReadError,
    WriteError,
    open_endpoint,
    open_input,
    open_output,
    parse_descriptor,
)
from backplane.router import OutputFailure, Router, RouterState, RouterStats, StopReason
from backplane.settings import RouteConfig, StreamSettings, load_config, save_config

__all__ = [
    "BackplaneError",
    "DescriptorParseError",
    "Direction",
    "EndpointDescriptor",
    "EndpointKind",
    "OpenError",
    "OutputFailure",
    "ReadError",
    "RouteConfig",
    "Router",
    "RouterState",
    "RouterStats",
    "StopReason",
    "StreamSettings",
    "WriteError",
    "__version__",
    "load_config",
    "open_endpoint",
    "open_input",
    "open_output",
    "parse_descriptor",
    "save_config",
]
