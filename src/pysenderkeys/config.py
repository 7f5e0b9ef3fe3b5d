from __future__ import annotations

from dataclasses import dataclass

from .constants import DEFAULT_DB_PATH, STORAGE_KEY_CONTEXT


@dataclass(slots=True)
class SessionConfig:
    # SQLite database backing the encrypted session record; ":memory:" keeps
    # everything in-process (useful for tests and ephemeral sessions).
    db_path: str = DEFAULT_DB_PATH
    key_context: bytes = STORAGE_KEY_CONTEXT
