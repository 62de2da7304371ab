"""
Process-wide logging for fabricbot.

Every module asks for its logger through :func:`get_logger`. Loggers print
coloured lines to the console through prompt_toolkit and append plain lines
to one rotating log file per bot session under ``logs/``.

Environment:
    FABRICBOT_LOG_DIR: directory for session log files (default ``<repo>/logs``).
    FABRICBOT_LOG_LEVEL: console level name such as ``INFO`` (default ``DEBUG``).
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Seconds within which a restart keeps appending to the previous session file
SESSION_REUSE_WINDOW = 60


def resolve_logs_dir() -> Path:
    """Directory for log files, created on demand."""
    configured = os.getenv("FABRICBOT_LOG_DIR")
    logs_dir = Path(configured) if configured else Path(__file__).parents[3] / "logs"
    logs_dir = logs_dir.resolve()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def resolve_console_level() -> int:
    """Console level from ``FABRICBOT_LOG_LEVEL``; unknown names fall back to DEBUG."""
    name = os.getenv("FABRICBOT_LOG_LEVEL", "DEBUG").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.DEBUG


LOGS_DIR: Path = resolve_logs_dir()
LOG_FILEPATH: Path | None = None


class ColorFormatter(logging.Formatter):
    """Wraps each formatted line in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Console handler that writes through prompt_toolkit so log lines keep their
    colours and do not tear an active prompt.

    Args:
        formatter (logging.Formatter | None): Optional formatter to apply to log records.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """True when stderr is an interactive terminal."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
color_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


def get_log_filepath() -> Path:
    """
    Path of the log file for this session.

    The newest file from today is reused if it was written to within
    ``SESSION_REUSE_WINDOW`` seconds; otherwise a new timestamped file is
    chosen. The choice is cached for the life of the process.
    """
    global LOG_FILEPATH

    if LOG_FILEPATH is not None:
        return LOG_FILEPATH

    now = datetime.now()
    todays_logs = sorted(
        LOGS_DIR.glob(f"{now:%Y-%m-%d}*.log"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    if todays_logs and now.timestamp() - todays_logs[0].stat().st_mtime < SESSION_REUSE_WINDOW:
        LOG_FILEPATH = todays_logs[0]
    else:
        LOG_FILEPATH = LOGS_DIR / f"{now.strftime(DATE_FORMAT)}.log"
    return LOG_FILEPATH


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and session-file handlers to ``logger_name`` once.

    Parameters
    ----------
    logger_name:
        Name of the logger to configure.

    Returns
    -------
    logging.Logger
        The configured logger. Calling again returns it unchanged.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = PromptToolkitHandler(formatter=color_formatter)
    console_handler.setLevel(resolve_console_level())
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(plain_formatter)
    logger.addHandler(file_handler)

    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Return the fabricbot logger named ``logger_name``."""
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` that logs uncaught exceptions; Ctrl+C keeps the default behaviour."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    get_logger("fabricbot").critical(
        "Uncaught exception",
        exc_info=(exception_type, exception_instance, exception_traceback),
    )


# Library loggers that would otherwise flood the console
NOISY_LOGGERS = [
    "discord", "discord.gateway", "discord.client", "discord.http",
    "websockets", "aiohttp", "aiosqlite",
]

for noisy_logger in NOISY_LOGGERS:
    library_logger = logging.getLogger(noisy_logger)
    library_logger.setLevel(logging.ERROR)
    library_logger.propagate = False
    library_logger.handlers = []


sys.excepthook = handle_exception
