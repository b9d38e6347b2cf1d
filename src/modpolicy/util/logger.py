import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from datetime import datetime
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
ROOT_LOGGER_NAME = "modpolicy"

LOGS_DIR: Path = Path(os.getenv("MODPOLICY_LOG_DIR") or Path(__file__).parents[3] / "logs").resolve()
LOG_FILE_PREFIX = "modpolicy"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_COLORS = {
    "DEBUG": "\033[36m",      # Cyan
    "INFO": "\033[32m",       # Green
    "WARNING": "\033[33m",    # Yellow
    "ERROR": "\033[31m",      # Red
    "CRITICAL": "\033[38;5;88m",  # Dark Red (ANSI 256-color)
}
RESET_COLOR = "\033[0m"

# Shared by every logger of the session, resolved on first use
LOG_FILEPATH: Path | None = None

# -------------------- Formatters --------------------
class ColorFormatter(logging.Formatter):
    """
    Log formatter that wraps each message in an ANSI color picked by level.

    Policy list conflicts are logged at INFO and store failures at ERROR, so
    the colors make routine reconciliation output easy to tell apart from
    problems with the homeserver.
    """

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Logging handler that prints through prompt_toolkit.

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
    """Return True when stderr is attached to a terminal."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def console_level() -> int:
    """
    Level of the console handler, read from ``MODPOLICY_LOG_LEVEL``.

    Unknown names fall back to DEBUG. The log file always receives DEBUG.
    """
    name = os.getenv("MODPOLICY_LOG_LEVEL", "DEBUG").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.DEBUG


# -------------------- Logger Setup --------------------

def get_log_filepath() -> Path:
    """
    Return the log file of the current session, choosing it on first call.

    The newest ``modpolicy-<date>*.log`` of today is reused when it was
    written less than 60 seconds ago, so a quick restart keeps appending to
    the same file.
    """
    global LOG_FILEPATH

    if LOG_FILEPATH is None:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        now = datetime.now()
        existing_logs = sorted(
            LOGS_DIR.glob(f"{LOG_FILE_PREFIX}-{now:%Y-%m-%d}*.log"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if existing_logs and now.timestamp() - existing_logs[0].stat().st_mtime < 60:
            LOG_FILEPATH = existing_logs[0]
        else:
            LOG_FILEPATH = LOGS_DIR / f"{LOG_FILE_PREFIX}-{now.strftime(DATE_FORMAT)}.log"

    return LOG_FILEPATH


def setup_logger() -> logging.Logger:
    """Configure the ``modpolicy`` logger with console and rotating file handlers.

    Component loggers are children of this logger and propagate to it, so
    the handlers are attached once per process.

    Returns
    -------
    logging.Logger
        The configured package logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter

    console_handler = PromptToolkitHandler(formatter=console_formatter)
    console_handler.setLevel(console_level())
    root.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(plain_formatter)
    root.addHandler(file_handler)

    return root


def get_logger(component: str) -> logging.Logger:
    """Return the logger of one modpolicy component, e.g. ``policy_list``.

    Parameters
    ----------
    component:
        Short component name; the logger is ``modpolicy.<component>``.

    Returns
    -------
    logging.Logger
        Logger instance ready for use.
    """
    setup_logger()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


# -------------------- Exception Handling --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    Global exception hook that logs uncaught exceptions.

    KeyboardInterrupt goes to the default hook so Ctrl+C still ends the
    process normally.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
    else:
        logging.getLogger(ROOT_LOGGER_NAME).error(
            "Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback)
        )


# -------------------- Suppress Noisy Libraries --------------------
NOISY_LOGGERS = ["httpx", "httpcore", "asyncio"]


def silence_noisy_loggers() -> None:
    """Raise third-party loggers to ERROR and drop any handlers they added."""
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers = []


silence_noisy_loggers()
sys.excepthook = handle_exception
