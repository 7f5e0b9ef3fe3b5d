"""
Sender key generation and fan-out.

Before a group message is sent the channel needs an own sender key that every
current member has received. `KeyDistributionCoordinator.ensure_distributed`
creates that key on first use, records a self-copy among the received keys
(so our own messages stay decryptable after a restore), and pushes a sealed
distribution payload to each member through a `DistributionTransport`.

Distribution failures are not fatal: the key is kept and the next call retries
the fan-out with the same key. Generation failures are fatal and propagate.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from .constants import CHAIN_KEY_LEN, DISTRIBUTION_ID_LEN, DISTRIBUTION_PAYLOAD_LEN
from .crypto.provider import CryptoProvider
from .exceptions import DistributionError, GenerationError, InvalidDistributionError
from .keys import SenderKey
from .store import SenderKeyStore
from .util.asyncio import consume_exception

logger = logging.getLogger(__name__)

_CHAIN_INDEX = struct.Struct(">I")


@dataclass(frozen=True, slots=True)
class MemberKey:
    user_id: str
    identity_key: bytes


@dataclass(frozen=True, slots=True)
class SealedDistribution:
    to_user_id: str
    payload: bytes


class DistributionTransport(Protocol):
    async def get_channel_member_keys(self, channel_id: str) -> list[MemberKey]: ...

    async def distribute_sender_keys(
        self, channel_id: str, distributions: list[SealedDistribution]
    ) -> None: ...


def encode_distribution_payload(key: SenderKey) -> bytes:
    return bytes(key.distribution_id) + bytes(key.chain_key) + _CHAIN_INDEX.pack(key.chain_index)


def decode_distribution_payload(data: bytes) -> SenderKey:
    if len(data) != DISTRIBUTION_PAYLOAD_LEN:
        raise InvalidDistributionError(
            f"distribution payload must be {DISTRIBUTION_PAYLOAD_LEN} bytes, got {len(data)}"
        )
    (chain_index,) = _CHAIN_INDEX.unpack_from(data, DISTRIBUTION_ID_LEN + CHAIN_KEY_LEN)
    return SenderKey(
        distribution_id=bytearray(data[:DISTRIBUTION_ID_LEN]),
        chain_key=bytearray(data[DISTRIBUTION_ID_LEN : DISTRIBUTION_ID_LEN + CHAIN_KEY_LEN]),
        chain_index=chain_index,
    )


class KeyDistributionCoordinator:
    def __init__(
        self,
        store: SenderKeyStore,
        provider: CryptoProvider,
        transport: DistributionTransport,
        *,
        local_user_id: Callable[[], str | None],
    ) -> None:
        self._store = store
        self._provider = provider
        self._transport = transport
        self._local_user_id = local_user_id
        self._inflight: dict[str, asyncio.Task[SenderKey]] = {}

    @property
    def store(self) -> SenderKeyStore:
        return self._store

    def is_inflight(self, channel_id: str) -> bool:
        return channel_id in self._inflight

    async def ensure_distributed(self, channel_id: str) -> SenderKey:
        """
        Return the channel's own sender key, generating and distributing it first
        if needed.

        Concurrent calls for one channel share a single attempt. Raises
        `GenerationError` if a new key cannot be produced; distribution failures
        are logged and leave the channel unmarked for a later retry.
        """

        task = self._inflight.get(channel_id)
        if task is None:
            key = self._store.get_own_key(channel_id)
            if key is not None and self._store.is_distributed(channel_id):
                return key
            task = asyncio.create_task(self._run(channel_id), name=f"sender-key:{channel_id}")
            self._inflight[channel_id] = task
            task.add_done_callback(lambda t, cid=channel_id: self._forget(cid, t))
        # Shielded: a cancelled caller must not abort the attempt other callers await.
        return await asyncio.shield(task)

    def invalidate(self, channel_id: str) -> None:
        """
        Drop the channel's own key and distributed flag so the next send
        regenerates. Received keys (including stale self-copies) are kept.
        """

        self._store.remove_own_key(channel_id)
        self._store.unmark_distributed(channel_id)
        # A fan-out still running carries the old key; later callers must not join it.
        self._inflight.pop(channel_id, None)

    def reset(self) -> None:
        """Detach every in-flight attempt. Call whenever the store is wiped."""

        self._inflight.clear()

    def process_distribution(
        self,
        channel_id: str,
        from_user_id: str,
        sealed: bytes,
        *,
        identity_private_key: bytes,
    ) -> bool:
        """
        Open a sender key distribution addressed to us and record it.

        Returns False if this `(channel_id, distribution_id)` was already known.
        """

        try:
            payload = self._provider.open_distribution(sealed, identity_private_key)
        except Exception as e:
            raise InvalidDistributionError(
                f"cannot open sender key distribution from {from_user_id}: {e}"
            ) from e
        key = decode_distribution_payload(payload)
        added = self._store.add_received_key(channel_id, key.distribution_id, from_user_id, key)
        logger.debug(
            "received sender key %s for channel %s from %s (new=%s)",
            key.distribution_hex,
            channel_id,
            from_user_id,
            added,
        )
        return added

    def _forget(self, channel_id: str, task: asyncio.Task[SenderKey]) -> None:
        if self._inflight.get(channel_id) is task:
            del self._inflight[channel_id]
        consume_exception(task)

    async def _run(self, channel_id: str) -> SenderKey:
        # Generation, own-key storage and the self-copy all happen before the
        # first await, so readers never see a half-written channel.
        key = self._store.get_own_key(channel_id)
        if key is None:
            key = self._generate(channel_id)
        elif self._store.is_distributed(channel_id):
            return key

        try:
            await self._distribute(channel_id, key)
        except Exception:
            logger.warning(
                "sender key distribution failed for channel %s; will retry on next send",
                channel_id,
                exc_info=True,
            )
            return key

        # The key may have been invalidated while we were distributing it.
        if self._store.get_own_key(channel_id) is key:
            self._store.mark_distributed(channel_id)
        return key

    def _generate(self, channel_id: str) -> SenderKey:
        try:
            key = self._provider.generate_sender_key()
        except Exception as e:
            raise GenerationError(f"failed to generate sender key for {channel_id}: {e}") from e
        self._store.set_own_key(channel_id, key)

        user_id = self._local_user_id()
        if user_id is not None:
            self._store.add_received_key(channel_id, key.distribution_id, user_id, key.clone())
        logger.debug(
            "generated sender key %s for channel %s (self-copy=%s)",
            key.distribution_hex,
            channel_id,
            user_id is not None,
        )
        return key

    async def _distribute(self, channel_id: str, key: SenderKey) -> None:
        members = await self._transport.get_channel_member_keys(channel_id)
        me = self._local_user_id()
        payload = encode_distribution_payload(key)

        sealed: list[SealedDistribution] = []
        for member in members:
            if member.user_id == me:
                continue
            try:
                data = self._provider.seal_distribution(payload, member.identity_key)
            except Exception as e:
                raise DistributionError(
                    f"cannot seal sender key for member {member.user_id}: {e}",
                    channel_id=channel_id,
                ) from e
            sealed.append(SealedDistribution(to_user_id=member.user_id, payload=data))

        if sealed:
            await self._transport.distribute_sender_keys(channel_id, sealed)
        logger.debug(
            "distributed sender key %s for channel %s to %d member(s)",
            key.distribution_hex,
            channel_id,
            len(sealed),
        )
