"""
Logging for the finance fetcher.

Every record logged while a fetch is running is stamped with the scope of
that fetch: the run id set by the orchestrator, and the unit key and source
set by the unit itself. Scopes live in a ContextVar, and each orchestrator
task runs in its own copy of the context, so concurrent units never see each
other's fields.

Console logs go to stderr through rich; stdout is left to the CLI's results.
An optional file handler writes one JSON object per record.

Usage:
    logger = get_logger(__name__)
    with log_context(unit="alphavantage:AAPL", source="alphavantage"):
        logger.info("Fetched value", value=178.23)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, MutableMapping

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER_NAME = "finfetch"
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

# Keyword arguments that belong to logging itself rather than to the record
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


@dataclass(frozen=True)
class FetchScope:
    """Fields stamped on every record logged inside a fetch."""

    run_id: str | None = None
    unit: str | None = None
    source: str | None = None

    def fields(self) -> dict[str, str]:
        return {name: value for name, value in asdict(self).items() if value is not None}


_scope_var: ContextVar[FetchScope] = ContextVar("fetch_scope", default=FetchScope())


def current_scope() -> FetchScope:
    """Scope of the code that is running now."""
    return _scope_var.get()


@contextmanager
def log_context(
    run_id: str | None = None,
    unit: str | None = None,
    source: str | None = None,
) -> Iterator[FetchScope]:
    """Narrow the logging scope for the duration of the block.

    Fields left as None are inherited from the enclosing scope. Tasks created
    inside the block inherit the scope as it was when they were created.
    """
    changes = {"run_id": run_id, "unit": unit, "source": source}
    scope = replace(
        _scope_var.get(), **{name: value for name, value in changes.items() if value is not None}
    )
    token = _scope_var.set(scope)
    try:
        yield scope
    finally:
        _scope_var.reset(token)


def _record_scope(record: logging.LogRecord) -> FetchScope:
    return getattr(record, "scope", None) or FetchScope()


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


class FetchLogger(logging.LoggerAdapter):
    """Logger taking structured fields as keyword arguments.

    Fields and the current scope are attached to the record as ``fields``
    and ``scope`` when the call is made, so handlers see them even if they
    format the record later.
    """

    def __init__(self, logger: logging.Logger) -> None:
        super().__init__(logger, {})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOGGING_KWARGS}
        extra = dict(kwargs.pop("extra", None) or {})
        extra.update(scope=current_scope(), fields=fields)
        kwargs["extra"] = extra
        return msg, kwargs


class JSONLinesFormatter(logging.Formatter):
    """Formats each record as one JSON object.

    Scope fields sit at the top level next to the message; call-site fields
    are nested under ``fields``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_scope(record).fields(),
        }
        fields = _record_fields(record)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()


class ScopedRichHandler(RichHandler):
    """Rich console handler that shows the unit and fields of each record."""

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        text = super().render_message(record, message)
        scope = _record_scope(record)

        prefix = Text()
        if scope.run_id:
            # uuid7 ids share their leading timestamp digits
            prefix.append(f"{scope.run_id[-8:]} ", style="dim")
        if scope.unit:
            prefix.append(f"{scope.unit} ", style="magenta")

        fields = _record_fields(record)
        if fields:
            text.append(" " + " ".join(f"{k}={v}" for k, v in fields.items()), style="dim")
        return Text.assemble(prefix, text)


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Route finfetch logs to stderr and, optionally, a JSON-lines file.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: JSON-lines file to append to. None disables file logging.
        console_output: Whether to log to stderr.
    """
    level = logging.getLevelNamesMapping()[log_level.upper()]

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    root_logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONLinesFormatter())
        root_logger.addHandler(file_handler)

    if console_output:
        root_logger.addHandler(
            ScopedRichHandler(
                level,
                console=Console(stderr=True),
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
        )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> FetchLogger:
    """Get a logger under the finfetch namespace.

    Until setup_logging() is called, warnings and errors still reach stderr.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not root_logger.handlers:
        setup_logging(log_level="WARNING")

    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return FetchLogger(logging.getLogger(name))
