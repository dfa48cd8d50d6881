"""Logging setup for vtexdeploy.

Log records go to stderr so that ``--output json`` on stdout stays
parseable. Credentials known to the active profile are masked in every
record before it is formatted.
"""

import logging
import sys
from collections.abc import Iterable
from enum import Enum
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

MASK = "****"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "asyncio")


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @classmethod
    def from_flags(cls, verbose: int, quiet: bool, default: "LogLevel") -> "LogLevel":
        """Map ``-v``/``-vv``/``--quiet`` onto a level; flags beat config."""
        if verbose >= 2:
            return cls.DEBUG
        if verbose == 1:
            return cls.INFO
        if quiet:
            return cls.ERROR
        return default


class SecretMaskingFilter(logging.Filter):
    """Replaces known secret values in log messages with a mask."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        # Longest first so a token containing another secret is masked whole
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def mask(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, MASK)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            record.msg = self.mask(record.getMessage())
            record.args = None
        return True


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    rich_output: bool = True,
    secrets: Iterable[str] = (),
) -> logging.Logger:
    """Install a single stderr handler on the root logger.

    Args:
        level: Level for the root and ``vtexdeploy`` loggers
        rich_output: Use ``RichHandler``; otherwise a plain timestamped format
        secrets: Values to mask in every record

    Returns:
        The ``vtexdeploy`` logger
    """
    log_level = getattr(logging, level.value.upper())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler: logging.Handler
    if rich_output:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    handler.addFilter(SecretMaskingFilter(secrets))

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logger = logging.getLogger("vtexdeploy")
    logger.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger namespaced under ``vtexdeploy``."""
    if name.startswith("vtexdeploy"):
        return logging.getLogger(name)
    return logging.getLogger(f"vtexdeploy.{name}")


class StructuredLogger:
    """Logger that appends bound ``key=value`` context to each message.

    The orchestrator binds ``deployment_id`` and ``environment`` once per
    deployment so every line of a run can be grepped together.
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self._logger = get_logger(name)
        self._context: dict[str, Any] = dict(context or {})

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a new logger with extra context; this one is unchanged."""
        return StructuredLogger(self._logger.name, {**self._context, **kwargs})

    def _log(self, level: int, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        context = {**self._context, **kwargs}
        if context:
            pairs = " ".join(f"{k}={v}" for k, v in context.items())
            message = f"{message} [{pairs}]"
        self._logger.log(level, message, exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR with the current traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)
