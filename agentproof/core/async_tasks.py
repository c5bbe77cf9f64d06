"""Background proof runs started from API requests.

Runs are keyed (one key per agent) so a second request for an agent whose
run is still in flight can be refused instead of producing a duplicate
submission.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)
_PENDING_TASKS: dict[str, asyncio.Task[Any]] = {}


def is_running(key: str) -> bool:
    task = _PENDING_TASKS.get(key)
    return task is not None and not task.done()


def fire_and_forget(coro: Coroutine[Any, Any, Any], *, key: str) -> asyncio.Task[Any] | None:
    """Schedule ``coro`` under ``key``; failures are logged, never raised.

    Returns None (and closes the coroutine) when ``key`` is already running
    or there is no running loop.
    """
    if is_running(key):
        coro.close()
        return None
    try:
        task = asyncio.create_task(coro, name=key)
    except RuntimeError:
        # No running loop (e.g. during shutdown)
        coro.close()
        return None
    _PENDING_TASKS[key] = task

    def _on_done(done_task: asyncio.Task[Any]) -> None:
        if _PENDING_TASKS.get(key) is done_task:
            del _PENDING_TASKS[key]
        try:
            done_task.result()
        except asyncio.CancelledError:
            return
        except Exception:
            logger.exception("Background proof run failed: %s", key)

    task.add_done_callback(_on_done)
    return task


async def drain_background_tasks(timeout_seconds: float = 1.0) -> None:
    """Wait for in-flight runs, cancelling any still going after the timeout.

    Used by tests and at shutdown so the event loop does not close under a
    run that is still writing its proof record.
    """
    pending = {task for task in _PENDING_TASKS.values() if not task.done()}
    if not pending:
        return

    _, still_pending = await asyncio.wait(pending, timeout=timeout_seconds)
    for task in still_pending:
        task.cancel()

    if still_pending:
        await asyncio.gather(*still_pending, return_exceptions=True)
