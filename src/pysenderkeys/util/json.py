from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from ..exceptions import SnapshotError

_BUFFER_TAG = "Buffer"


class BufferEncoder(json.JSONEncoder):
    """Encodes key buffers as `{"type": "Buffer", "data": <base64>}`."""

    def default(self, o: Any) -> Any:
        if isinstance(o, (bytes, bytearray, memoryview)):
            return {"type": _BUFFER_TAG, "data": base64.b64encode(bytes(o)).decode("ascii")}
        return super().default(o)


def _decode_buffer(obj: dict[str, Any]) -> Any:
    if obj.get("type") != _BUFFER_TAG:
        return obj
    data = obj.get("data")
    if not isinstance(data, str):
        raise SnapshotError("Buffer object without base64 data")
    try:
        return base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise SnapshotError(f"malformed Buffer data: {e}") from e


def dump_snapshot(snapshot: dict[str, Any]) -> bytes:
    return json.dumps(snapshot, cls=BufferEncoder, sort_keys=True).encode("utf-8")


def load_snapshot(data: bytes) -> dict[str, Any]:
    """Parse a serialized snapshot. Raises `SnapshotError` on anything malformed."""

    try:
        obj = json.loads(data.decode("utf-8"), object_hook=_decode_buffer)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotError(f"snapshot is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise SnapshotError(f"snapshot must be an object, got {type(obj).__name__}")
    return obj
