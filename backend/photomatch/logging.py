"""structlog setup for the photomatch API.

Log lines carry the request id bound by the request middleware, the log
level, an ISO timestamp, and the service name. Development gets the
colored console renderer; every other environment gets JSON lines.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from photomatch import __version__
from photomatch.config import settings

SERVICE_NAME = "photomatch"


def _level(name: str) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


class _TeeWriter:
    """File-like sink that copies every log line to stdout and a log file.

    The file is dropped on the first open or write error; stdout keeps
    working.
    """

    def __init__(self, file_path: str) -> None:
        self._path = file_path
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            self._warn(f"Could not open log file {file_path!r}: {exc}")

    @staticmethod
    def _warn(message: str) -> None:
        # structlog is not usable while it is being configured
        print(f"WARNING: {message}. Logging to stdout only.", file=sys.stderr)

    def _to_file(self, action: str, data: str = "") -> None:
        if self._file is None:
            return
        try:
            if data:
                self._file.write(data)
            self._file.flush()
        except (OSError, ValueError) as exc:
            self._file = None
            self._warn(f"Log file {action} failed for {self._path!r}: {exc}")

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        self._to_file("write", data)

    def flush(self) -> None:
        sys.stdout.flush()
        self._to_file("flush")


def configure_logging() -> None:
    """Configure structlog from settings (environment, log_level, log_file)."""
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service,
    ]
    if settings.environment == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    sink = _TeeWriter(settings.log_file) if settings.log_file else None

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level(settings.log_level)),
        context_class=dict,
        # PrintLogger only calls write() and flush() on its file
        logger_factory=structlog.PrintLoggerFactory(file=sink),  # type: ignore[arg-type]
        cache_logger_on_first_use=True,
    )
