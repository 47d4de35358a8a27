"""Logging setup and helpers for sbdeploy.

Console verbosity follows the -v count of the CLI:

    (none)  WARNING
    -v      INFO     run start/finish, exit classification
    -vv     DEBUG    command lines, file writes and removals
    -vvv    TRACE    every raw line of ansible-playbook output

Inventory text and key material are never logged.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

DEFAULT_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
TRACE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
    3: TRACE,
}

LEVEL_NAMES = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Third-party loggers that are noisy at INFO
_CHATTY_LOGGERS = ("asyncssh",)


def get_level_from_verbosity(verbosity: int) -> int:
    """Map a -v count to a logging level; anything above 3 is TRACE."""
    return VERBOSITY_LEVELS.get(min(max(verbosity, 0), 3), TRACE)


def get_level_from_name(level_name: str) -> int:
    """Map a level name (case-insensitive) to a logging level.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LEVEL_NAMES[level_name.lower()]
    except KeyError:
        valid = ", ".join(LEVEL_NAMES)
        raise ValueError(f"Invalid log level: {level_name}. Valid levels: {valid}") from None


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    debug: bool = False,
    log_file: str | Path | None = None,
    file_level: int | None = None,
) -> None:
    """Configure the root logger for the CLI.

    Replaces any handlers already installed on the root logger.

    Args:
        level: Console level
        format_string: Console format (chosen from level when None)
        debug: Use the detailed format regardless of level
        log_file: Also log to this file, with the detailed format
        file_level: Level for the file handler (defaults to level)

    Example:
        >>> configure_logging(level=logging.INFO)
        >>> configure_logging(level=logging.WARNING, log_file="/tmp/sbdeploy.log",
        ...                   file_level=TRACE)
    """
    if format_string is None:
        if level <= TRACE:
            format_string = TRACE_FORMAT
        elif debug or level <= logging.DEBUG:
            format_string = DEBUG_FORMAT
        else:
            format_string = DEFAULT_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(min(level, file_level or level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(file_level or level)
        file_handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        root_logger.addHandler(file_handler)

    if level > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _with_context(message: str, context: dict[str, Any]) -> str:
    if not context:
        return message
    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    return f"{message} ({context_str})"


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    threshold: float | None = None,
    **context: Any,
) -> Generator[None, None, None]:
    """Time a block and log its duration.

    Args:
        logger: Logger to write to
        operation: Name of the timed operation
        level: Log level
        threshold: Only log when the block took at least this many seconds
        **context: Extra key/values appended to the message
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        if threshold is None or duration >= threshold:
            logger.log(level, _with_context(f"{operation} completed in {duration:.3f}s", context))


class StructuredLogger:
    """Logger that appends bound key/value context to every message.

    The runner binds the run id and kind so all lines of one run can be
    picked out of interleaved output.

    Example:
        >>> log = get_logger("sbdeploy.runner", run_id="3f2a9c0d11e4b7a8", kind="mysql")
        >>> log.info("Starting run")
        INFO [sbdeploy.runner] Starting run (run_id=3f2a9c0d11e4b7a8, kind=mysql)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context: dict[str, Any] = dict(context)

    def _log(self, level: int, message: str, extra: dict[str, Any]) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, _with_context(message, {**self.context, **extra}))

    def trace(self, message: str, **extra: Any) -> None:
        self._log(TRACE, message, extra)

    def debug(self, message: str, **extra: Any) -> None:
        self._log(logging.DEBUG, message, extra)

    def info(self, message: str, **extra: Any) -> None:
        self._log(logging.INFO, message, extra)

    def warning(self, message: str, **extra: Any) -> None:
        self._log(logging.WARNING, message, extra)

    def error(self, message: str, **extra: Any) -> None:
        self._log(logging.ERROR, message, extra)

    @contextmanager
    def performance(
        self,
        operation: str,
        level: int = logging.INFO,
        **context: Any,
    ) -> Generator[None, None, None]:
        """Time a block and log its duration with the bound context."""
        with log_performance(self.logger, operation, level, **{**self.context, **context}):
            yield


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Create a StructuredLogger with initial context."""
    return StructuredLogger(name, **context)
