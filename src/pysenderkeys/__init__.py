"""
pysenderkeys: sender key management for end-to-end encrypted group channels.

Generates per-channel sender keys, distributes them to channel members, keeps
self-copies so a user's own group messages stay decryptable, and persists the
session state encrypted under a key derived from the identity private key.
"""

from __future__ import annotations

from .config import SessionConfig
from .distribution import (
    DistributionTransport,
    KeyDistributionCoordinator,
    MemberKey,
    SealedDistribution,
)
from .exceptions import (
    DistributionError,
    GenerationError,
    InvalidDistributionError,
    SenderKeysError,
    SessionError,
    SnapshotError,
    StorageError,
)
from .keys import ReceivedSenderKey, SenderKey
from .persistence import LoadOutcome, LoadResult, PersistenceGateway
from .session import CryptoSessionContext
from .storage import EncryptedRecord, RecordStore, SqliteRecordStore
from .store import SenderKeyStore

__all__ = [
    "CryptoSessionContext",
    "DistributionError",
    "DistributionTransport",
    "EncryptedRecord",
    "GenerationError",
    "InvalidDistributionError",
    "KeyDistributionCoordinator",
    "LoadOutcome",
    "LoadResult",
    "MemberKey",
    "PersistenceGateway",
    "ReceivedSenderKey",
    "RecordStore",
    "SealedDistribution",
    "SenderKey",
    "SenderKeyStore",
    "SenderKeysError",
    "SessionConfig",
    "SessionError",
    "SnapshotError",
    "SqliteRecordStore",
    "StorageError",
]

__version__ = "0.1.0"
