"""
Logging setup for oauth2-forwarder.

All modules log below the "oauth2_forwarder" logger. Authorization codes and
PKCE challenges are masked before any record is emitted, so debug output can
be shared safely.
"""

import logging
import logging.handlers
import os
import re
import sys
from datetime import datetime, timezone

from termcolor import colored


LOGGER_NAME = 'oauth2_forwarder'

LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

LEVEL_COLORS = {
    logging.ERROR: 'red',
    logging.WARNING: 'yellow',
    logging.INFO: 'cyan',
    logging.DEBUG: 'magenta',
}

_SECRET_PARAMS = re.compile(r'((?:code|code_challenge)=)([^"&\s]*)', re.IGNORECASE)


def sanitize(text: str) -> str:
    """Mask the values of code= and code_challenge= parameters."""
    return _SECRET_PARAMS.sub(lambda m: m.group(1) + '********', text)


class SanitizingFilter(logging.Filter):
    """Rewrites each record's message with secrets masked."""

    def filter(self, record):
        record.msg = sanitize(record.getMessage())
        record.args = None
        return True


class ConsoleFormatter(logging.Formatter):
    """`[prefix] [LEVEL] message`, coloured by level."""

    def __init__(self, prefix=''):
        super().__init__()
        self.prefix = prefix

    def format(self, record):
        prefix = f"[{self.prefix}] " if self.prefix else ''
        line = f"{prefix}[{record.levelname}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return colored(line, LEVEL_COLORS.get(record.levelno, 'white'))


class FileFormatter(logging.Formatter):
    """Uncoloured, ISO timestamped lines for log files."""

    def __init__(self, prefix=''):
        super().__init__()
        self.prefix = prefix

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        prefix = f"[{self.prefix}] " if self.prefix else ''
        line = f"{timestamp} {prefix}[{record.levelname}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class NullLogger:
    """Logger that discards everything."""

    def debug(self, *args, **kwargs):
        pass

    def info(self, *args, **kwargs):
        pass

    def warning(self, *args, **kwargs):
        pass

    def error(self, *args, **kwargs):
        pass

    warn = warning
    exception = error


def _check_level(level: str) -> int:
    if level.lower() not in LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    return LEVELS[level.lower()]


def setup_logging(level: str = 'info', stream=None, prefix: str = '', use_file_format: bool = False) -> logging.Logger:
    """
    Attach a handler to the package logger.

    Calling it again replaces the handlers installed by previous calls,
    log files included.

    Args:
        level: One of debug, info, warn(ing), error
        stream: Output stream, stderr by default
        prefix: Text shown in brackets before the level, e.g. "proxy"
        use_file_format: Timestamps and no colours, for log files

    Returns:
        The package logger
    """
    levelno = _check_level(level)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, '_oauth2_forwarder', False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler._oauth2_forwarder = True
    handler.setLevel(levelno)
    handler.addFilter(SanitizingFilter())
    handler.setFormatter(FileFormatter(prefix) if use_file_format else ConsoleFormatter(prefix))

    logger.addHandler(handler)
    logger.setLevel(levelno)
    return logger


def add_log_file(path: str, level: str = 'info', prefix: str = '', rotate_on_start: bool = False,
                 max_bytes: int = 0, backup_count: int = 5) -> logging.Handler:
    """
    Also write the package logger's records to a rotating log file.

    The proxy rotates its file every time it starts; the short-lived browse
    command appends and rotates by size instead.

    Args:
        path: Log file, its directory is created if needed
        level: Threshold for the file, independent of the console
        prefix: Text shown in brackets before the level
        rotate_on_start: Move an existing non-empty file to "<path>.1" first
        max_bytes: Rotate once the file reaches this size, 0 disables it
        backup_count: Number of rotated files kept

    Returns:
        The installed handler

    Raises:
        OSError: If the directory or file cannot be created
    """
    levelno = _check_level(level)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8',
        delay=True
    )
    if rotate_on_start and os.path.isfile(path) and os.path.getsize(path) > 0:
        handler.doRollover()

    handler._oauth2_forwarder = True
    handler.setLevel(levelno)
    handler.addFilter(SanitizingFilter())
    handler.setFormatter(FileFormatter(prefix))

    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(handler)
    # The logger must pass records the file wants even when the console is quieter.
    if logger.level == logging.NOTSET or logger.level > levelno:
        logger.setLevel(levelno)
    return handler
