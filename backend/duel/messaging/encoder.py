"""
MessagePack codec for the room protocol.

Outbound events are plain dicts produced by pydantic ``model_dump``. Inbound
frames must decode to a map and stay small: the largest legitimate request
(a joinRoom with a nickname) is well under a hundred bytes.
"""

from typing import Any

import msgpack

MAX_BUFFER_LEN = 4 * 1024
MAX_MAP_LEN = 32

_UNPACK_LIMITS = {
    "max_str_len": 256,
    "max_bin_len": 256,
    "max_array_len": 64,
    "max_map_len": MAX_MAP_LEN,
    "max_ext_len": 64,
}


class DecodeError(Exception):
    """An inbound frame is not a MessagePack map within the size limits."""


def _wire_safe(value: object) -> object:
    # seat-keyed dicts come out of model_dump with int keys
    if isinstance(value, dict):
        return {(str(key) if isinstance(key, int) else key): _wire_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return list(map(_wire_safe, value))
    return value


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(_wire_safe(data))


def decode(data: bytes) -> dict[str, Any]:
    size = len(data)
    if size > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {size} bytes, limit is {MAX_BUFFER_LEN}")

    try:
        message = msgpack.unpackb(data, raw=False, **_UNPACK_LIMITS)
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode frame: {e}") from e

    if isinstance(message, dict):
        return message
    raise DecodeError(f"expected map, got {type(message).__name__}")
