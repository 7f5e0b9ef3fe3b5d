"""
Encrypted at-rest persistence of the crypto session snapshot.

The storage key is derived on demand from the identity private key (keyed
BLAKE2b over a fixed context) and never written anywhere. A stolen record
(ciphertext + nonce) is useless without the identity private key, which only
lives in memory during an authenticated session.

Nothing here raises into the caller's login/logout flow:
- `persist` returns False when the write fails; the previous record stays intact
- `load` returns False for "no record" and for "record unusable" alike
- `clear` logs and swallows storage errors
"""

from __future__ import annotations

import datetime
import enum
import logging
from dataclasses import dataclass

from .codec import SnapshotCodec
from .constants import STORAGE_KEY_CONTEXT
from .crypto.provider import CryptoProvider
from .storage import EncryptedRecord, RecordStore
from .util.json import dump_snapshot, load_snapshot

logger = logging.getLogger(__name__)


class LoadOutcome(enum.Enum):
    RESTORED = "restored"
    NO_RECORD = "no_record"
    READ_FAILED = "read_failed"
    DECRYPT_FAILED = "decrypt_failed"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass(frozen=True, slots=True)
class LoadResult:
    outcome: LoadOutcome
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is LoadOutcome.RESTORED

    def __bool__(self) -> bool:
        return self.ok


def _utc_now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class PersistenceGateway:
    def __init__(
        self,
        records: RecordStore,
        codec: SnapshotCodec,
        provider: CryptoProvider,
        *,
        key_context: bytes = STORAGE_KEY_CONTEXT,
    ) -> None:
        self._records = records
        self._codec = codec
        self._provider = provider
        self._key_context = bytes(key_context)

    def derive_storage_key(self, identity_private_key: bytes) -> bytes:
        return self._provider.keyed_hash(
            self._key_context, bytes(identity_private_key), length=self._provider.key_size
        )

    async def persist(self, user_id: str, identity_private_key: bytes) -> bool:
        try:
            key = self.derive_storage_key(identity_private_key)
            plaintext = dump_snapshot(self._codec.build_snapshot())
            nonce = self._provider.random_nonce()
            ciphertext = self._provider.encrypt(plaintext, key, nonce)
            await self._records.put(
                EncryptedRecord(
                    user_id=user_id,
                    ciphertext=ciphertext,
                    nonce=nonce,
                    updated_at=_utc_now_iso(),
                )
            )
        except Exception:
            logger.warning(
                "failed to persist crypto state for %s; state remains memory-only",
                user_id,
                exc_info=True,
            )
            return False
        logger.debug("persisted crypto state for %s (%d bytes)", user_id, len(ciphertext))
        return True

    async def load(self, user_id: str, identity_private_key: bytes) -> bool:
        """
        Restore the persisted snapshot for `user_id`, replacing in-memory state.

        Returns False when there is nothing usable to restore; in-memory state
        is then left untouched.
        """

        return (await self.load_detailed(user_id, identity_private_key)).ok

    async def load_detailed(self, user_id: str, identity_private_key: bytes) -> LoadResult:
        try:
            record = await self._records.get(user_id)
        except Exception as e:
            return self._unusable(user_id, LoadOutcome.READ_FAILED, e)
        if record is None:
            return LoadResult(LoadOutcome.NO_RECORD)

        try:
            key = self.derive_storage_key(identity_private_key)
            plaintext = self._provider.decrypt(record.ciphertext, key, record.nonce)
        except Exception as e:
            return self._unusable(user_id, LoadOutcome.DECRYPT_FAILED, e)

        try:
            snapshot = load_snapshot(plaintext)
            self._codec.restore_snapshot(snapshot)
        except Exception as e:
            return self._unusable(user_id, LoadOutcome.INVALID_PAYLOAD, e)

        logger.debug("restored crypto state for %s (saved %s)", user_id, record.updated_at)
        return LoadResult(LoadOutcome.RESTORED)

    async def clear(self, user_id: str | None = None) -> None:
        try:
            if user_id is None:
                await self._records.clear()
            else:
                await self._records.delete(user_id)
        except Exception:
            logger.warning("failed to clear persisted crypto state", exc_info=True)

    def _unusable(self, user_id: str, outcome: LoadOutcome, error: BaseException) -> LoadResult:
        logger.warning("discarding persisted crypto state for %s: %s", user_id, outcome.value)
        logger.debug("persisted crypto state error", exc_info=error)
        return LoadResult(outcome, error)
