from __future__ import annotations

from typing import Any, Protocol

from .constants import SNAPSHOT_VERSION
from .exceptions import SnapshotError
from .keys import ReceivedSenderKey, SenderKey
from .store import SenderKeyStore


class SnapshotCodec(Protocol):
    def build_snapshot(self) -> dict[str, Any]: ...

    def restore_snapshot(self, snapshot: dict[str, Any]) -> None: ...


def sender_key_to_dict(key: SenderKey) -> dict[str, Any]:
    return {
        "distribution_id": bytes(key.distribution_id),
        "chain_key": bytes(key.chain_key),
        "chain_index": int(key.chain_index),
    }


def sender_key_from_dict(d: Any) -> SenderKey:
    if not isinstance(d, dict):
        raise TypeError(f"Expected object for SenderKey, got {type(d).__name__}")
    return SenderKey(
        distribution_id=d["distribution_id"],
        chain_key=d["chain_key"],
        chain_index=int(d["chain_index"]),
    )


class SenderKeySnapshotCodec:
    """
    Exports and restores the sender key maps of a `SenderKeyStore`.

    The snapshot is a plain dict of str/int/bytes values, ready for the
    Buffer-aware JSON in `util.json`. Distributed-channel flags are not
    exported: a restored session re-sends its keys on the next message.
    """

    def __init__(self, store: SenderKeyStore) -> None:
        self._store = store

    def build_snapshot(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "my_sender_keys": {
                channel_id: sender_key_to_dict(key)
                for channel_id, key in self._store.own_keys.items()
            },
            "received_sender_keys": [
                {
                    "channel_id": entry.channel_id,
                    "from_user_id": entry.from_user_id,
                    "key": sender_key_to_dict(entry.key),
                }
                for entry in self._store.received_keys.values()
            ],
        }

    def restore_snapshot(self, snapshot: dict[str, Any]) -> None:
        """
        Replace the store contents with `snapshot`.

        The snapshot is parsed in full before anything is touched, so a
        `SnapshotError` leaves the store as it was.
        """

        own, received = self._parse(snapshot)
        self._store.clear()
        for channel_id, key in own.items():
            self._store.set_own_key(channel_id, key)
        for entry in received:
            self._store.add_received_key(
                entry.channel_id, entry.key.distribution_id, entry.from_user_id, entry.key
            )

    def _parse(
        self, snapshot: Any
    ) -> tuple[dict[str, SenderKey], list[ReceivedSenderKey]]:
        if not isinstance(snapshot, dict):
            raise SnapshotError("snapshot is not an object")
        version = snapshot.get("version")
        if version != SNAPSHOT_VERSION:
            raise SnapshotError(f"unsupported snapshot version: {version!r}")
        try:
            own = {
                str(channel_id): sender_key_from_dict(d)
                for channel_id, d in (snapshot.get("my_sender_keys") or {}).items()
            }
            received = [
                ReceivedSenderKey(
                    channel_id=str(e["channel_id"]),
                    from_user_id=str(e["from_user_id"]),
                    key=sender_key_from_dict(e["key"]),
                )
                for e in (snapshot.get("received_sender_keys") or [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SnapshotError(f"malformed snapshot: {e}") from e
        return own, received
