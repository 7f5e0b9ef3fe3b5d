from __future__ import annotations

import pytest

from pysenderkeys.exceptions import SnapshotError
from pysenderkeys.util.json import dump_snapshot, load_snapshot


def test_buffers_are_tagged_and_restored_as_bytes() -> None:
    data = dump_snapshot({"version": 1, "key": bytearray(b"\x00\xff")})

    assert b'"type": "Buffer"' in data
    assert load_snapshot(data) == {"version": 1, "key": b"\x00\xff"}


@pytest.mark.parametrize(
    "raw",
    [
        b"\xff\xfe",
        b"not json",
        b"[1, 2]",
        b'{"key": {"type": "Buffer", "data": 5}}',
        b'{"key": {"type": "Buffer", "data": "!!not base64!!"}}',
    ],
    ids=["not-utf8", "not-json", "not-object", "data-not-str", "bad-base64"],
)
def test_malformed_snapshot_raises_snapshot_error(raw: bytes) -> None:
    with pytest.raises(SnapshotError):
        load_snapshot(raw)
