"""Persistence format for backplane settings.

Settings objects expose ``to_dict()``; this package turns them into JSON
bytes for config files and reads JSON objects back.
"""

from __future__ import annotations

from typing import Any

from backplane.serialization.json import decode, encode

__all__ = ["deserialize", "serialize"]


def serialize(obj: Any, *, pretty: bool = False, sort_keys: bool = False) -> bytes:
    """Serialize a settings object or dict to JSON.

    Accepts any object with a ``to_dict()`` method, or a plain dict.
    """
    data = obj.to_dict() if hasattr(obj, "to_dict") else obj
    return encode(data, pretty=pretty, sort_keys=sort_keys)


def deserialize(raw: bytes) -> dict[str, Any]:
    """Deserialize JSON bytes to a dict."""
    return decode(raw)
