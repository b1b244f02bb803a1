"""Logging for avd-manager.

Every module logs through ``get_logger(__name__)`` under the ``avd_manager``
logger, which only carries a NullHandler until ``configure_logging()`` runs
(the ``avdm`` CLI calls it; embedding applications may bring their own
handlers). ``AVD_MANAGER_LOG_LEVEL`` sets the level without code changes.

Output format:
    WARNING [2026-02-25 10:02:54] avd_manager.lifecycle - All stop strategies failed image=Pixel_7_API_33

Context keys used across the package, passed with ``extra={...}``:
    image     AVD name (never ``name``: that is a LogRecord attribute)
    serial    adb endpoint serial, e.g. ``emulator-5554``
    tool      logical tool name (``emulator``, ``adb``, ``pkill``, ...)
    command   shell-quoted command line as the user would type it
    method    stop strategy that ran (``endpoint``, ``process_signal``, ...)
    pid       emulator process id signalled by the stop path

These keys are rendered first, in that order, as ``key=value`` pairs; any
other context follows alphabetically.

Records go through a bounded queue to a listener thread that writes with
click.echo(err=True), so a coroutine never waits on stderr. A full queue
drops the record.
"""

import contextlib
import logging
import logging.handlers
import os
import queue

import click

LIBRARY_LOGGER_NAME: str = "avd_manager"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

_env_level = os.environ.get("AVD_MANAGER_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_QUEUE_CAPACITY = 1024

# Attributes every LogRecord carries; anything else came in through extra=.
_STANDARD_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_CONTEXT_KEY_ORDER: tuple[str, ...] = ("image", "serial", "tool", "command", "method", "pid")


class _ContextFormatter(logging.Formatter):
    """Appends ``extra`` context after the message, image first."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_RECORD_ATTRS}
        if not context:
            return base
        leading = [key for key in _CONTEXT_KEY_ORDER if key in context]
        trailing = sorted(key for key in context if key not in _CONTEXT_KEY_ORDER)
        rendered = " ".join(f"{key}={context[key]}" for key in [*leading, *trailing])
        return f"{base} {rendered}"


class _ClickHandler(logging.Handler):
    """Writes formatted records to stderr via click (strips ANSI off-TTY)."""

    def __init__(self) -> None:
        super().__init__()
        self.formatter = _ContextFormatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            color = "red" if record.levelno >= logging.ERROR else None
            click.echo(click.style(msg, fg=color, dim=color is None), err=True)
        except BlockingIOError:
            pass  # stderr buffer full, drop
        except Exception:  # noqa: BLE001
            self.handleError(record)


class _NonBlockingHandler(logging.handlers.QueueHandler):
    """Queue-backed handler; the caller's coroutine never waits on stderr."""

    def __init__(self) -> None:
        q: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        super().__init__(q)
        self._listener = logging.handlers.QueueListener(q, _ClickHandler(), respect_handler_level=False)
        self._listener.start()

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Same-process queue: keep extra attributes intact for the formatter.
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(queue.Full):
            self.queue.put_nowait(record)

    def close(self) -> None:
        self._listener.stop()
        super().close()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``avd_manager`` hierarchy."""
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Configure library logging for the CLI or an embedding application.

    Idempotent: at most one non-blocking handler is attached no matter how
    often this is called.

    Args:
        level: Log level (e.g. logging.DEBUG, "INFO"). Overrides the env var.
        quiet: If True, only errors are shown. Takes precedence over level.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _NonBlockingHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_NonBlockingHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
