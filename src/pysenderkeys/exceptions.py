from __future__ import annotations


class SenderKeysError(Exception):
    """Base error for the pysenderkeys library."""


class GenerationError(SenderKeysError):
    """The crypto provider could not produce a new sender key."""


class DistributionError(SenderKeysError):
    """
    Member key lookup or sender-key delivery failed.

    Recoverable: the own key is retained and distribution is retried on the
    next `ensure_distributed()` call.
    """

    def __init__(self, message: str, *, channel_id: str) -> None:
        super().__init__(message)
        self.channel_id = channel_id


class InvalidDistributionError(SenderKeysError, ValueError):
    """A received sender-key distribution payload could not be opened or parsed."""


class StorageError(SenderKeysError):
    """Durable record store failure."""


class SnapshotError(SenderKeysError, ValueError):
    """A crypto state snapshot is malformed and cannot be restored."""


class SessionError(SenderKeysError):
    """Operation requires a logged-in crypto session."""
