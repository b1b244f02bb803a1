"""Cleanup of child processes owned by the command executor.

Cleanup never raises: failures are logged and reported through the return value.
"""

import asyncio

from avd_manager._logging import get_logger
from avd_manager.constants import KILL_WAIT_SECONDS
from avd_manager.platform_utils import ProcessWrapper

logger = get_logger(__name__)


async def cleanup_process(
    proc: ProcessWrapper | None,
    name: str,
    context_id: str,
    term_timeout: float = 0.0,
    kill_timeout: float = KILL_WAIT_SECONDS,
) -> bool:
    """Stop a child process (optional SIGTERM phase, then SIGKILL of the whole tree).

    Args:
        proc: Process to stop (None safe - returns immediately)
        name: Tool name for logging (e.g. "adb", "avdmanager")
        context_id: Correlation id for logging (e.g. the command line)
        term_timeout: Seconds to wait after SIGTERM; 0 skips straight to SIGKILL
        kill_timeout: Seconds to wait for the process to be reaped after SIGKILL

    Returns:
        True if the process is gone, False if it could not be confirmed dead
    """
    if proc is None:
        return True

    try:
        if proc.returncode is not None:
            return True

        if term_timeout > 0:
            logger.debug(f"Sending SIGTERM to {name}", extra={"context_id": context_id})
            await proc.terminate()
            try:
                await proc.wait_with_timeout(term_timeout)
                return True
            except TimeoutError:
                logger.debug(f"{name} ignored SIGTERM", extra={"context_id": context_id})

        logger.debug(f"Sending SIGKILL to {name} process tree", extra={"context_id": context_id})
        await proc.kill_tree()

        try:
            await proc.wait_with_timeout(kill_timeout)
            return True
        except TimeoutError:
            logger.error(
                f"{name} did not exit after SIGKILL",
                extra={"context_id": context_id, "pid": proc.pid, "kill_timeout": kill_timeout},
            )
            # Reap later so the child does not linger as a zombie
            _ = asyncio.create_task(proc.wait())  # noqa: RUF006
            return False

    except ProcessLookupError:
        return True

    except Exception as e:
        logger.error(
            f"{name} cleanup error",
            extra={"context_id": context_id, "error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        return False
