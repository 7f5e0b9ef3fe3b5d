from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from pysenderkeys.codec import SenderKeySnapshotCodec
from pysenderkeys.crypto.provider import DefaultCryptoProvider
from pysenderkeys.exceptions import StorageError
from pysenderkeys.persistence import LoadOutcome, PersistenceGateway
from pysenderkeys.storage import EncryptedRecord, RecordStore, SqliteRecordStore
from pysenderkeys.store import SenderKeyStore

K1 = bytes(range(32))
K2 = bytes(range(1, 33))


class FlakyRecordStore:
    """Wraps a real record store and fails writes/reads on demand."""

    def __init__(self, inner: SqliteRecordStore) -> None:
        self.inner = inner
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, user_id: str) -> EncryptedRecord | None:
        if self.fail_reads:
            raise StorageError("disk unreadable")
        return await self.inner.get(user_id)

    async def put(self, record: EncryptedRecord) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        await self.inner.put(record)

    async def delete(self, user_id: str) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        await self.inner.delete(user_id)

    async def clear(self) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        await self.inner.clear()

    async def close(self) -> None:
        await self.inner.close()


def _populated_store() -> SenderKeyStore:
    provider = DefaultCryptoProvider()
    store = SenderKeyStore()
    for channel in ("ch-1", "ch-2"):
        key = provider.generate_sender_key()
        store.set_own_key(channel, key)
        store.add_received_key(channel, key.distribution_id, "user-1", key.clone())
        store.mark_distributed(channel)
    remote = provider.generate_sender_key()
    remote.chain_index = 41
    store.add_received_key("ch-1", remote.distribution_id, "bob", remote)
    return store


def _gateway(
    records: RecordStore | None, store: SenderKeyStore | None = None
) -> tuple[PersistenceGateway, SenderKeyStore, SenderKeySnapshotCodec]:
    store = store if store is not None else SenderKeyStore()
    codec = SenderKeySnapshotCodec(store)
    gateway = PersistenceGateway(records, codec, DefaultCryptoProvider())  # type: ignore[arg-type]
    return gateway, store, codec


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "crypto.db"


@pytest.mark.asyncio
async def test_persist_then_load_roundtrip(db_path) -> None:
    records = SqliteRecordStore(db_path)
    src_gateway, _src_store, src_codec = _gateway(records, _populated_store())
    before = src_codec.build_snapshot()

    assert await src_gateway.persist("user-1", K1) is True
    await records.close()

    records2 = SqliteRecordStore(db_path)
    dst_gateway, dst_store, dst_codec = _gateway(records2)
    assert await dst_gateway.load("user-1", K1) is True

    assert dst_codec.build_snapshot() == before
    assert len(dst_store.own_keys) == 2
    assert len(dst_store.received_keys) == 3
    # distribution flags are not restored: keys are re-sent on next use
    assert dst_store.distributed_channels == frozenset()
    await records2.close()


@pytest.mark.asyncio
async def test_load_replaces_state_wholesale(db_path) -> None:
    records = SqliteRecordStore(db_path)
    src_gateway, _, src_codec = _gateway(records, _populated_store())
    await src_gateway.persist("user-1", K1)

    stale = DefaultCryptoProvider().generate_sender_key()
    dst_store = SenderKeyStore()
    dst_store.set_own_key("ch-old", stale)
    dst_store.mark_distributed("ch-old")
    dst_gateway, _, dst_codec = _gateway(records, dst_store)

    assert await dst_gateway.load("user-1", K1)
    assert dst_store.get_own_key("ch-old") is None
    assert dst_codec.build_snapshot() == src_codec.build_snapshot()
    await records.close()


@pytest.mark.asyncio
async def test_missing_record_returns_false(db_path) -> None:
    records = SqliteRecordStore(db_path)
    gateway, _, _ = _gateway(records)

    assert await gateway.load("nobody", K1) is False
    result = await gateway.load_detailed("nobody", K1)
    assert result.outcome is LoadOutcome.NO_RECORD
    assert not result
    await records.close()


@pytest.mark.asyncio
async def test_wrong_key_returns_false_and_leaves_memory_untouched(db_path) -> None:
    records = SqliteRecordStore(db_path)
    src_gateway, _, _ = _gateway(records, _populated_store())
    await src_gateway.persist("user-1", K1)

    existing = SenderKeyStore()
    own = DefaultCryptoProvider().generate_sender_key()
    existing.set_own_key("ch-9", own)
    gateway, store, codec = _gateway(records, existing)
    before = codec.build_snapshot()

    assert await gateway.load("user-1", K2) is False
    result = await gateway.load_detailed("user-1", K2)
    assert result.outcome is LoadOutcome.DECRYPT_FAILED
    assert result.error is not None

    assert codec.build_snapshot() == before
    assert store.get_own_key("ch-9") is own
    await records.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mangle",
    [
        lambda r: replace(r, ciphertext=bytes([r.ciphertext[0] ^ 0x01]) + r.ciphertext[1:]),
        lambda r: replace(r, ciphertext=r.ciphertext[:5]),
        lambda r: replace(r, ciphertext=b""),
        lambda r: replace(r, nonce=r.nonce[:-1]),
    ],
    ids=["bit-flip", "truncated", "empty", "short-nonce"],
)
async def test_corrupted_record_returns_false(db_path, mangle) -> None:
    records = SqliteRecordStore(db_path)
    gateway, _, _ = _gateway(records, _populated_store())
    await gateway.persist("user-1", K1)

    record = await records.get("user-1")
    assert record is not None
    await records.put(mangle(record))

    fresh, store, _ = _gateway(records)
    assert await fresh.load("user-1", K1) is False
    assert (await fresh.load_detailed("user-1", K1)).outcome is LoadOutcome.DECRYPT_FAILED
    assert len(store.own_keys) == 0
    await records.close()


@pytest.mark.asyncio
async def test_undecodable_payload_is_reported_as_invalid(db_path) -> None:
    records = SqliteRecordStore(db_path)
    gateway, store, _ = _gateway(records)
    provider = DefaultCryptoProvider()
    key = gateway.derive_storage_key(K1)
    nonce = provider.random_nonce()
    await records.put(
        EncryptedRecord(
            user_id="user-1",
            ciphertext=provider.encrypt(b'{"version": 99}', key, nonce),
            nonce=nonce,
            updated_at="2024-01-01T00:00:00+00:00",
        )
    )

    result = await gateway.load_detailed("user-1", K1)
    assert result.outcome is LoadOutcome.INVALID_PAYLOAD
    assert len(store.own_keys) == 0
    await records.close()


@pytest.mark.asyncio
async def test_read_failure_returns_false(db_path) -> None:
    records = FlakyRecordStore(SqliteRecordStore(db_path))
    gateway, _, _ = _gateway(records, _populated_store())
    await gateway.persist("user-1", K1)

    records.fail_reads = True
    result = await gateway.load_detailed("user-1", K1)
    assert result.outcome is LoadOutcome.READ_FAILED
    await records.close()


@pytest.mark.asyncio
async def test_write_failure_returns_false_and_keeps_previous_record(db_path) -> None:
    records = FlakyRecordStore(SqliteRecordStore(db_path))
    gateway, store, codec = _gateway(records, _populated_store())
    assert await gateway.persist("user-1", K1) is True
    saved = codec.build_snapshot()
    previous = await records.get("user-1")

    store.clear()
    records.fail_writes = True
    assert await gateway.persist("user-1", K1) is False
    assert await records.get("user-1") == previous

    records.fail_writes = False
    assert await gateway.load("user-1", K1)
    assert codec.build_snapshot() == saved
    await records.close()


@pytest.mark.asyncio
async def test_persist_overwrites_with_fresh_nonce(db_path) -> None:
    records = SqliteRecordStore(db_path)
    gateway, _, _ = _gateway(records, _populated_store())

    await gateway.persist("user-1", K1)
    first = await records.get("user-1")
    await gateway.persist("user-1", K1)
    second = await records.get("user-1")

    assert first is not None and second is not None
    assert first.nonce != second.nonce
    assert first.ciphertext != second.ciphertext
    await records.close()


@pytest.mark.asyncio
async def test_record_never_contains_key_material(db_path) -> None:
    records = SqliteRecordStore(db_path)
    store = _populated_store()
    gateway, _, _ = _gateway(records, store)
    await gateway.persist("user-1", K1)
    await records.close()

    raw = db_path.read_bytes()
    assert gateway.derive_storage_key(K1) not in raw
    assert K1 not in raw
    for key in store.own_keys.values():
        assert bytes(key.chain_key) not in raw
        assert bytes(key.distribution_id) not in raw


def test_storage_key_is_deterministic_and_identity_bound() -> None:
    gateway, _, _ = _gateway(None)

    k = gateway.derive_storage_key(K1)
    assert len(k) == 32
    assert gateway.derive_storage_key(K1) == k
    assert gateway.derive_storage_key(K2) != k

    other_context = PersistenceGateway(
        None,  # type: ignore[arg-type]
        SenderKeySnapshotCodec(SenderKeyStore()),
        DefaultCryptoProvider(),
        key_context=b"another-app",
    )
    assert other_context.derive_storage_key(K1) != k


@pytest.mark.asyncio
async def test_clear_one_and_all(db_path) -> None:
    records = SqliteRecordStore(db_path)
    gateway, _, _ = _gateway(records, _populated_store())
    await gateway.persist("user-1", K1)
    await gateway.persist("user-2", K2)

    await gateway.clear("user-1")
    assert await records.get("user-1") is None
    assert await records.get("user-2") is not None

    await gateway.clear()
    assert await records.get("user-2") is None
    await records.close()


@pytest.mark.asyncio
async def test_clear_swallows_storage_errors(db_path) -> None:
    records = FlakyRecordStore(SqliteRecordStore(db_path))
    gateway, _, _ = _gateway(records)
    records.fail_writes = True

    await gateway.clear("user-1")
    await gateway.clear()
    await records.close()
