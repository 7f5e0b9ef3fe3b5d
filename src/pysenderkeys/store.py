from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .keys import ReceivedSenderKey, SenderKey

ReceivedKeyId = tuple[str, bytes]


class SenderKeyStore:
    """
    Authoritative in-memory sender key state for one local user.

    - own keys: at most one active `SenderKey` per channel
    - received keys: one entry per `(channel_id, distribution_id)`, including
      self-copies of our own past generations
    - distributed channels: channels whose current own key was fanned out

    Everything here is synchronous and does no I/O.
    """

    def __init__(self) -> None:
        self._own: dict[str, SenderKey] = {}
        self._received: dict[ReceivedKeyId, ReceivedSenderKey] = {}
        self._distributed: set[str] = set()

    # own keys

    def get_own_key(self, channel_id: str) -> SenderKey | None:
        return self._own.get(channel_id)

    def set_own_key(self, channel_id: str, key: SenderKey) -> None:
        self._own[channel_id] = key

    def remove_own_key(self, channel_id: str) -> None:
        self._own.pop(channel_id, None)

    # received keys

    def add_received_key(
        self,
        channel_id: str,
        distribution_id: bytes | bytearray,
        from_user_id: str,
        key: SenderKey,
    ) -> bool:
        """
        Store a deep clone of `key` under `(channel_id, distribution_id)`.

        Returns False (and changes nothing) if that exact pair is already known.
        """

        rid = (channel_id, bytes(distribution_id))
        if rid in self._received:
            return False
        self._received[rid] = ReceivedSenderKey(
            channel_id=channel_id, from_user_id=from_user_id, key=key.clone()
        )
        return True

    def get_received_key(
        self, channel_id: str, distribution_id: bytes | bytearray
    ) -> ReceivedSenderKey | None:
        return self._received.get((channel_id, bytes(distribution_id)))

    def list_received_keys(self, channel_id: str) -> list[ReceivedSenderKey]:
        return [e for (cid, _), e in self._received.items() if cid == channel_id]

    # distribution flags

    def mark_distributed(self, channel_id: str) -> None:
        self._distributed.add(channel_id)

    def unmark_distributed(self, channel_id: str) -> None:
        self._distributed.discard(channel_id)

    def is_distributed(self, channel_id: str) -> bool:
        return channel_id in self._distributed

    # views

    @property
    def own_keys(self) -> Mapping[str, SenderKey]:
        return MappingProxyType(self._own)

    @property
    def received_keys(self) -> Mapping[ReceivedKeyId, ReceivedSenderKey]:
        return MappingProxyType(self._received)

    @property
    def distributed_channels(self) -> frozenset[str]:
        return frozenset(self._distributed)

    def clear(self) -> None:
        self._own.clear()
        self._received.clear()
        self._distributed.clear()
