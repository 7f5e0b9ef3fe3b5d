"""
Sender key value types.

A sender key is the symmetric chain a member uses to encrypt group messages
for one channel. The chain key and index are advanced in place by the group
encrypt/decrypt path, so the buffers here are mutable `bytearray`s and every
copy that must not follow those mutations goes through `clone()`.
"""

from __future__ import annotations

from dataclasses import dataclass

from .constants import CHAIN_KEY_LEN, DISTRIBUTION_ID_LEN


def _as_buffer(v: bytes | bytearray | memoryview, *, field: str, length: int) -> bytearray:
    if not isinstance(v, (bytes, bytearray, memoryview)):
        raise TypeError(f"Expected bytes for {field}, got {type(v).__name__}")
    if len(v) != length:
        raise ValueError(f"{field} must be {length} bytes, got {len(v)}")
    return v if isinstance(v, bytearray) else bytearray(v)


@dataclass(slots=True)
class SenderKey:
    distribution_id: bytearray
    chain_key: bytearray
    chain_index: int = 0

    def __post_init__(self) -> None:
        self.distribution_id = _as_buffer(
            self.distribution_id, field="SenderKey.distribution_id", length=DISTRIBUTION_ID_LEN
        )
        self.chain_key = _as_buffer(
            self.chain_key, field="SenderKey.chain_key", length=CHAIN_KEY_LEN
        )
        if int(self.chain_index) < 0:
            raise ValueError("SenderKey.chain_index must be non-negative")
        self.chain_index = int(self.chain_index)

    def clone(self) -> SenderKey:
        """Value-equal copy backed by fresh buffers."""

        return SenderKey(
            distribution_id=bytearray(self.distribution_id),
            chain_key=bytearray(self.chain_key),
            chain_index=self.chain_index,
        )

    @property
    def distribution_hex(self) -> str:
        return bytes(self.distribution_id).hex()


@dataclass(slots=True)
class ReceivedSenderKey:
    channel_id: str
    from_user_id: str
    key: SenderKey

    @property
    def distribution_id(self) -> bytes:
        return bytes(self.key.distribution_id)
