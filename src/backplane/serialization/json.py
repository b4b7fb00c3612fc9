"""JSON encoding of backplane settings and statistics, backed by orjson."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any

import orjson

from backplane.endpoints.descriptor import EndpointDescriptor

logger = logging.getLogger(__name__)


def json_default(obj: object) -> object:
    """Default handler for values orjson does not encode as wanted.

    Handles:

    * :class:`EndpointDescriptor` → its descriptor text
      (``"udp:127.0.0.1:9000"``), the form config files use.
    * Objects with a ``to_dict()`` method (settings, stats).
    * Filesystem paths → string.

    :param obj: The object to convert.
    :returns: A JSON-serializable representation.
    :raises TypeError: If *obj* is not a recognised type.
    """
    if isinstance(obj, EndpointDescriptor):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, PurePath):
        return str(obj)
    msg = f"Cannot serialize {type(obj).__name__}"
    logger.warning("serialize failed: %s", msg)
    raise TypeError(msg)


def encode(data: Any, *, pretty: bool = False, sort_keys: bool = False) -> bytes:
    """Encode *data* to JSON bytes.

    Dataclasses are passed to :func:`json_default` instead of being
    encoded field by field, so their ``to_dict()`` form is used.
    """
    options = orjson.OPT_PASSTHROUGH_DATACLASS
    if pretty:
        options |= orjson.OPT_INDENT_2
    if sort_keys:
        options |= orjson.OPT_SORT_KEYS
    return orjson.dumps(data, default=json_default, option=options)


def decode(raw: bytes) -> dict[str, Any]:
    """Decode JSON bytes to a dict.

    :raises orjson.JSONDecodeError: If *raw* is not valid JSON.
    :raises TypeError: If the document is not a JSON object.
    """
    result = orjson.loads(raw)
    if not isinstance(result, dict):
        msg = f"Expected JSON object, got {type(result).__name__}"
        logger.warning("deserialize failed: %s", msg)
        raise TypeError(msg)
    return result
