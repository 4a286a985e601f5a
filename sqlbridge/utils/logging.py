"""Structured event logging for sqlbridge.

Pools, the template cache and commands report what they do as named events
(``pool.connection.create``, ``pool.sweep.evict``, ``cache.template.compile`` ...)
carrying machine-readable fields such as ``pool_id`` or ``slot_count``. Events are
ordinary :mod:`logging` records under the ``sqlbridge`` namespace, so applications
route and filter them with their existing handlers; :class:`StructuredFormatter`
renders them as one JSON object per line.
"""

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any, Optional

import msgspec

__all__ = (
    "CACHE_LOGGER_NAME",
    "COMMAND_LOGGER_NAME",
    "POOL_LOGGER_NAME",
    "ROOT_LOGGER_NAME",
    "StructuredFormatter",
    "configure_logging",
    "correlation_scope",
    "get_logger",
    "log_with_context",
)

ROOT_LOGGER_NAME = "sqlbridge"
POOL_LOGGER_NAME = "sqlbridge.pool"
CACHE_LOGGER_NAME = "sqlbridge.cache"
COMMAND_LOGGER_NAME = "sqlbridge.command"

_correlation_id: ContextVar[Optional[str]] = ContextVar("sqlbridge_correlation_id", default=None)

_json_encoder = msgspec.json.Encoder(enc_hook=str)

# attributes every LogRecord has; anything else was attached through ``extra=``
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Generator[None, None, None]:
    """Tag every event logged inside the block with ``correlation_id``.

    Scopes nest; the previous id is restored on exit.
    """
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """Render records as single-line JSON.

    The record message becomes ``event``. Fields from :func:`log_with_context` and
    from ``extra=`` are merged into the top-level object.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        correlation_id = getattr(record, "correlation_id", None) or _correlation_id.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        fields = getattr(record, "extra_fields", None)
        if fields:
            entry.update(fields)
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in {"extra_fields", "correlation_id"}
        )

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return _json_encoder.encode(entry).decode("utf-8")


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``sqlbridge`` or a logger beneath it.

    Args:
        name: Dotted suffix such as ``"driver.connection"``, or a full name already
            under ``sqlbridge``
    """
    if name is None or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit ``event`` with structured ``fields``.

    Returns without building a record when ``level`` is disabled.
    """
    if not logger.isEnabledFor(level):
        return
    logger.log(level, event, extra={"extra_fields": fields}, stacklevel=2)


def configure_logging(
    level: "int | str" = logging.INFO,
    *,
    structured: bool = True,
    stream: Optional[IO[str]] = None,
    pool_level: "int | str | None" = None,
) -> logging.Handler:
    """Attach a single stream handler to the ``sqlbridge`` logger.

    Calling again replaces the handler installed by the previous call. Events stop
    propagating to the root logger.

    Args:
        level: Level for the whole ``sqlbridge`` namespace
        structured: JSON output when True, plain text otherwise
        stream: Destination; ``sys.stderr`` when omitted
        pool_level: Separate level for pool events, which are the most frequent

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = level.upper()
    if isinstance(pool_level, str):
        pool_level = pool_level.upper()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in [h for h in root.handlers if getattr(h, "_sqlbridge_handler", False)]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        StructuredFormatter() if structured else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    handler._sqlbridge_handler = True  # type: ignore[attr-defined]  # noqa: SLF001
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    logging.getLogger(POOL_LOGGER_NAME).setLevel(pool_level if pool_level is not None else logging.NOTSET)

    log_with_context(root, logging.DEBUG, "logging.configured", structured=structured)
    return handler
