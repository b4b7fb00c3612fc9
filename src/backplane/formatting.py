"""Output formatting for the backplane CLI.

Supports human-readable and JSON output modes.
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from backplane.router import RouterStats
    from backplane.settings import RouteConfig


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def print_error(message: str, use_json: bool = False) -> None:
    """Print an error message, respecting output mode."""
    if use_json:
        print(json.dumps({"error": message}))
    else:
        print(f"Error: {message}", file=sys.stderr)


def print_kv(pairs: list[tuple[str, Any]]) -> None:
    """Print key-value pairs aligned on the colon."""
    if not pairs:
        return
    max_key = max(len(k) for k, _ in pairs)
    for key, value in pairs:
        print(f"  {key.ljust(max_key)}  {value}")


def print_route(config: RouteConfig, use_json: bool = False) -> None:
    """Print the resolved input and outputs of a route."""
    if use_json:
        print_json(config.to_dict())
        return
    outputs = ", ".join(str(o) for o in config.outputs)
    print(f"{config.input} -> [{outputs}]")


def print_stats(stats: RouterStats, config: RouteConfig, use_json: bool = False) -> None:
    """Print the statistics of a finished routing session."""
    if use_json:
        print_json({"route": config.to_dict(), "stats": stats.to_dict()})
        return
    print_kv([("chunks", stats.chunks), ("bytes read", stats.bytes_read)])
    for descriptor, output in zip(config.outputs, stats.outputs, strict=True):
        status = "ok" if output.healthy else "failing"
        print_kv(
            [
                (str(descriptor), f"{output.bytes_written} bytes, {output.failures} failures"),
                ("status", status),
            ]
        )
