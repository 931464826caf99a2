"""A :class:`logging.Handler` that writes records as cloud log entries.

Plain stdlib records are turned into ``(level, message, metadata)`` with
the record's ``extra`` fields as metadata.  Records produced by structlog's
``ProcessorFormatter.wrap_for_formatter`` carry the whole event dict in
``record.msg``; its keys become the metadata instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from structcloud.common import PYTHON_LEVELS, LoggingCommon, Options
from structcloud.exceptions import format_stack, normalize_exc_info
from structcloud.processors import LEVEL_ALIASES

# Loggers whose records are never forwarded: the library's own diagnostics
# and the API client stack it writes through.
EXCLUDED_LOGGERS: tuple[str, ...] = (
    "structcloud",
    "google.cloud",
    "google.auth",
    "google.api_core",
    "urllib3",
    "grpc",
)

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class CloudLoggingHandler(logging.Handler):
    """Forward :mod:`logging` records to Cloud Logging.

    Parameters
    ----------
    options:
        Adapter configuration.  When ``options.levels`` is unset the Python
        level table (:data:`~structcloud.common.PYTHON_LEVELS`) is used.
    level:
        Minimum level handled.
    stream:
        Output stream for the synchronous sink.
    excluded_loggers:
        Logger name prefixes that are ignored.
    """

    def __init__(
        self,
        options: Options | None = None,
        *,
        level: int = logging.NOTSET,
        stream: Any = None,
        excluded_loggers: Iterable[str] = EXCLUDED_LOGGERS,
    ) -> None:
        super().__init__(level)
        if options is None:
            options = Options()
        if options.levels is None:
            options = replace(options, levels=PYTHON_LEVELS)
        self.common = LoggingCommon(options, stream=stream)
        self._excluded = tuple(excluded_loggers)

    def emit(self, record: logging.LogRecord) -> None:
        if self._is_excluded(record.name):
            return
        try:
            level, message, metadata = self.translate(record)
            self.common.log(level, message, metadata)
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        flush = getattr(self.common.cloud_log, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        try:
            close = getattr(self.common.cloud_log, "close", None)
            if close is not None:
                close()
        finally:
            super().close()

    def translate(self, record: logging.LogRecord) -> tuple[str, str, dict[str, Any]]:
        """Split *record* into the adapter's ``(level, message, metadata)``."""
        if isinstance(record.msg, dict):
            metadata = dict(record.msg)
            metadata.pop("level", None)
            message = metadata.pop("event", None)
            if message is None:
                message = metadata.pop("message", "")
            message = str(message)
            exc_info = normalize_exc_info(metadata.pop("exc_info", None)) or record.exc_info
        else:
            metadata = {
                key: value
                for key, value in vars(record).items()
                if key not in _RESERVED_ATTRS and not key.startswith("_")
            }
            message = record.getMessage()
            exc_info = record.exc_info

        metadata.setdefault("logger", record.name)
        if exc_info and "stack" not in metadata:
            metadata["stack"] = format_stack(exc_info)  # type: ignore[arg-type]

        level = record.levelname.lower()
        if level not in self.common.levels:
            level = LEVEL_ALIASES.get(level, level)
        return level, message, metadata

    def _is_excluded(self, name: str) -> bool:
        return any(name == prefix or name.startswith(prefix + ".") for prefix in self._excluded)
