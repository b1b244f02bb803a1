"""Subprocess and background-task helpers.

- collect_output: drain a child's combined output into a buffer as it arrives
- log_task_exception: done-callback that surfaces failures of fire-and-forget tasks
"""

from __future__ import annotations

import asyncio

from avd_manager._logging import get_logger

logger = get_logger(__name__)

_READ_CHUNK_BYTES = 4096


async def collect_output(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    """Append everything read from *stream* to *sink* until EOF.

    Reads in chunks rather than lines: tools like ``avdmanager`` print
    progress without newlines, and on a deadline we want every byte the child
    managed to write. The sink is shared with the caller, so output gathered
    before a cancellation is kept.
    """
    if stream is None:
        return
    while chunk := await stream.read(_READ_CHUNK_BYTES):
        sink.extend(chunk)


def log_task_exception(task: asyncio.Task[object]) -> None:
    """Log an unhandled exception from a background task.

    Usage:
        task = asyncio.create_task(some_coroutine())
        task.add_done_callback(log_task_exception)
    """
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task failed",
            extra={"task_name": task.get_name()},
            exc_info=exc,
        )
