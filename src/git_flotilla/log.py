"""Logging helpers.

The package logs through the standard library under the ``git_flotilla``
logger. Library use is silent by default (a NullHandler is installed in
``__init__``); the CLI attaches a rich handler via :func:`setup_logging`.
"""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "git_flotilla"

# Keyword arguments the logging module itself understands.
_RESERVED = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class KeyValueLogger(logging.LoggerAdapter):
    """Logger adapter that renders keyword arguments as ``key=value`` pairs.

    >>> log = get_logger()
    >>> log.info("repository pulled", path="api", commits=3)
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _RESERVED}
        if fields:
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            msg = f"{msg} {rendered}"
        if self.extra:
            kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str | None = None) -> KeyValueLogger:
    """Return a key-value logger under the package namespace."""
    full_name = LOGGER_NAME if not name else f"{LOGGER_NAME}.{name}"
    return KeyValueLogger(logging.getLogger(full_name), {})


def null_logger() -> KeyValueLogger:
    """Return a logger that discards everything."""
    logger = logging.getLogger(f"{LOGGER_NAME}.null")
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    logger.disabled = True
    return KeyValueLogger(logger, {})


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Attach a rich handler to the package logger."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
