from __future__ import annotations

import logging
from types import TracebackType

from .codec import SenderKeySnapshotCodec
from .config import SessionConfig
from .crypto.provider import CryptoProvider, DefaultCryptoProvider
from .distribution import DistributionTransport, KeyDistributionCoordinator
from .exceptions import SessionError
from .keys import ReceivedSenderKey, SenderKey
from .persistence import LoadOutcome, LoadResult, PersistenceGateway
from .storage import RecordStore, SqliteRecordStore
from .store import SenderKeyStore

logger = logging.getLogger(__name__)


class CryptoSessionContext:
    """
    Sender key state for one authenticated local user.

    Owned by whatever drives authentication: call `login()` once the identity
    key is unlocked and `logout()` (or `reset()`) when the session ends. Outside
    that window no user id is known, so generated keys get no self-copy and
    nothing can be persisted.
    """

    def __init__(
        self,
        transport: DistributionTransport,
        *,
        config: SessionConfig | None = None,
        provider: CryptoProvider | None = None,
        records: RecordStore | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self.provider = provider or DefaultCryptoProvider()
        self.records = records or SqliteRecordStore(self.config.db_path)
        self.store = SenderKeyStore()
        self.coordinator = KeyDistributionCoordinator(
            self.store, self.provider, transport, local_user_id=lambda: self._user_id
        )
        self.persistence = PersistenceGateway(
            self.records,
            SenderKeySnapshotCodec(self.store),
            self.provider,
            key_context=self.config.key_context,
        )
        self._user_id: str | None = None
        self._identity_private_key: bytes | None = None

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def logged_in(self) -> bool:
        return self._user_id is not None

    async def login(self, user_id: str, identity_private_key: bytes) -> LoadResult:
        """
        Start a session and restore any persisted state for `user_id`.

        An unusable or missing record yields a cold start with empty state.
        """

        if self._user_id is not None and self._user_id != user_id:
            raise SessionError(f"session already logged in as {self._user_id}")
        self.coordinator.reset()
        self.store.clear()
        self._user_id = user_id
        self._identity_private_key = bytes(identity_private_key)
        result = await self.persistence.load_detailed(user_id, self._identity_private_key)
        if result.outcome is not LoadOutcome.RESTORED:
            logger.info("starting %s with empty crypto state (%s)", user_id, result.outcome.value)
        return result

    async def ensure_distributed(self, channel_id: str) -> SenderKey:
        return await self.coordinator.ensure_distributed(channel_id)

    def invalidate(self, channel_id: str) -> None:
        self.coordinator.invalidate(channel_id)

    def list_received_keys(self, channel_id: str) -> list[ReceivedSenderKey]:
        return self.store.list_received_keys(channel_id)

    def process_distribution(self, channel_id: str, from_user_id: str, sealed: bytes) -> bool:
        _, identity_private_key = self._require_login()
        return self.coordinator.process_distribution(
            channel_id, from_user_id, sealed, identity_private_key=identity_private_key
        )

    async def persist(self) -> bool:
        user_id, identity_private_key = self._require_login()
        return await self.persistence.persist(user_id, identity_private_key)

    async def logout(self, *, persist: bool = True) -> None:
        """Persist (best effort), then drop all in-memory key material."""

        if self._user_id is not None and self._identity_private_key is not None and persist:
            await self.persistence.persist(self._user_id, self._identity_private_key)
        self._teardown()

    async def reset(self) -> None:
        """
        Drop in-memory state and delete this user's persisted record (every
        record when nobody is logged in).

        Use when the identity key changes: sessions encrypted under the old key
        are useless with the new one.
        """

        user_id = self._user_id
        self._teardown()
        await self.persistence.clear(user_id)

    async def aclose(self) -> None:
        await self.records.close()

    async def __aenter__(self) -> CryptoSessionContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _require_login(self) -> tuple[str, bytes]:
        if self._user_id is None or self._identity_private_key is None:
            raise SessionError("no logged-in user")
        return self._user_id, self._identity_private_key

    def _teardown(self) -> None:
        self.coordinator.reset()
        self.store.clear()
        self._user_id = None
        self._identity_private_key = None
