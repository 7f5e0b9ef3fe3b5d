from __future__ import annotations

import asyncio
from typing import Any


def consume_exception(task: asyncio.Task[Any]) -> None:
    # Mark the exception as retrieved: waiters may all have been cancelled,
    # and the loop would otherwise log "exception was never retrieved".
    if not task.cancelled():
        task.exception()
