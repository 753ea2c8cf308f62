"""structlog setup shared by the server entrypoint and the test suite.

LOG_FORMAT picks the renderer: "json" for log shipping, "console" (or unset)
for people. LOG_LEVEL picks the root level and defaults to INFO.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_LOG_FORMATS = ("json", "console")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# uvicorn logs every websocket frame at debug level
_NOISY_LOGGERS = ("uvicorn.access",)


def _enum_values(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Log enum members (error codes, room phases) by their value."""
    return {key: value.value if isinstance(value, Enum) else value for key, value in event_dict.items()}


def _is_test() -> bool:
    return "pytest" in sys.modules


def resolve_json_mode() -> bool:
    fmt = os.environ.get("LOG_FORMAT", "").strip().lower()
    if fmt and fmt not in _LOG_FORMATS:
        raise ValueError(f"Invalid LOG_FORMAT={fmt!r}: expected {' or '.join(_LOG_FORMATS)}, or unset")
    return fmt == "json"


def resolve_log_level() -> int:
    name = os.environ.get("LOG_LEVEL", "").strip().upper() or "INFO"
    if name not in _LOG_LEVELS:
        raise ValueError(f"Invalid LOG_LEVEL={name!r}: expected one of {', '.join(_LOG_LEVELS)}")
    return logging.getLevelNamesMapping()[name]


def configure_structlog() -> None:
    """Send structlog events through stdlib logging.

    Rendering happens in the handlers' ProcessorFormatter, so stdlib loggers
    and structlog loggers share one output format, and pytest's caplog sees
    both.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _enum_values,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def _handler_formatter(*, json_mode: bool, colors: bool) -> logging.Formatter:
    if json_mode:
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=colors)
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )


def _open_log_file(log_dir: Path | str) -> tuple[Path, logging.FileHandler]:
    """Create the log directory and a file named after the current UTC time."""
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    return path, logging.FileHandler(path)


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | None = None,
) -> Path | None:
    """Install a stdout handler and, given log_dir, a timestamped log file.

    Returns the log file path, or None when no file was opened (no log_dir,
    or running under pytest). An explicit level wins over LOG_LEVEL.
    """
    json_mode = resolve_json_mode()
    level = resolve_log_level() if level is None else level
    configure_structlog()

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_handler_formatter(json_mode=json_mode, colors=sys.stdout.isatty()))
    root.addHandler(console)

    if log_dir is None or _is_test():
        return None
    path, file_handler = _open_log_file(log_dir)
    file_handler.setFormatter(_handler_formatter(json_mode=json_mode, colors=False))
    root.addHandler(file_handler)
    return path
