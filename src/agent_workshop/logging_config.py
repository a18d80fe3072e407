"""Loguru sinks for the workshop.

Every line carries the id of the session it concerns (``-`` outside any
session), so one log file can be followed per session with a plain grep.
Session-scoped components log through ``session_logger``.
"""

import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

NO_SESSION = "-"

_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[session]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session]} | {name}:{function}:{line} - {message}"


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    """Human-readable lines on stderr; stdout is reserved for the session feed."""

    def __init__(self, colorize: bool = True):
        self._colorize = colorize

    def register(self, level: str) -> None:
        logger.add(sys.stderr, level=level, colorize=self._colorize, format=_CONSOLE_FORMAT)

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "workshop.log",
        rotation: str = "10 MB",
        retention: int = 3,
        serialize: bool = False,
    ):
        self._path = Path(path)
        self._rotation = rotation
        self._retention = retention
        self._serialize = serialize

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # serialized records keep the session under record.extra.session
        logger.add(
            str(self._path),
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
            serialize=self._serialize,
        )

    def describe(self, level: str) -> str:
        kind = "json" if self._serialize else "text"
        return f"file ({self._path}, {kind}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

_DEFAULT_CONSUMERS: list[dict[str, Any]] = [{"type": "file"}]


def session_logger(session_id: str):
    """A logger whose lines are tagged with ``session_id``."""
    return logger.bind(session=session_id)


def build_consumer(config: dict[str, Any]) -> LogConsumer | None:
    cls = _CONSUMER_TYPES.get(config.get("type", ""))
    if cls is None:
        return None
    options = {k: v for k, v in config.items() if k not in ("type", "level")}
    try:
        return cls(**options)
    except TypeError as ex:
        logger.warning(f"Bad options for {config['type']} log consumer: {ex}")
        return None


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Replace loguru's default sink with the configured consumers.

    Returns a description of each consumer that was registered. Consumers
    with an unknown type or unusable options are skipped with a warning.
    """
    logger.remove()
    logger.configure(extra={"session": NO_SESSION})

    descriptions: list[str] = []
    for config in consumers if consumers is not None else _DEFAULT_CONSUMERS:
        consumer = build_consumer(config)
        if consumer is None:
            logger.warning(f"Skipping log consumer: {config!r}")
            continue
        sink_level = config.get("level", level)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
