"""Structlog and stdlib configuration for Cloud Logging.

Routes every structlog event and every stdlib record through a
:class:`~structcloud.handler.CloudLoggingHandler` on the root logger.
Structlog events keep their full event dict, so bound context, labels, and
trace keys become entry metadata.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars

from structcloud.common import DEFAULT_LOG_NAME, Options
from structcloud.exceptions import StackInfoProcessor, StackProcessor
from structcloud.handler import CloudLoggingHandler
from structcloud.processors import (
    add_labels,
    add_timestamp,
    add_trace_context,
    ensure_event_is_str,
    normalize_level,
)


def _to_logging_level(level_name: str) -> int:
    """Convert a human-readable level name to its :mod:`logging` constant."""
    upper_level = level_name.upper()
    if upper_level == "WARN":
        return logging.WARNING
    result: int = getattr(logging, upper_level, logging.INFO)
    return result


def _env_flag(environ: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = environ.get(name)
    if value is None or value == "":
        return default
    return value != "0"


def _parse_labels(raw: str) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` into a dict, skipping malformed pairs."""
    labels: dict[str, str] = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            labels[key.strip()] = value.strip()
    return labels


def options_from_env(environ: Mapping[str, str] | None = None) -> Options:
    """Build :class:`~structcloud.common.Options` from environment variables.

    - ``LOG_NAME`` (default: ``"structcloud_log"``)
    - ``LOG_PREFIX`` (optional message prefix)
    - ``LOG_LABELS`` (``key=value,key2=value2``)
    - ``GOOGLE_CLOUD_PROJECT`` (target project)
    - ``SERVICE_NAME`` / ``K_SERVICE`` and ``SERVICE_VERSION`` / ``K_REVISION``
      (service context attached to error entries)
    - ``LOG_REDIRECT_TO_STDOUT``, ``LOG_USE_MESSAGE_FIELD``,
      ``LOG_INSPECT_METADATA`` (``"1"`` = on, default off)
    """
    if environ is None:
        environ = os.environ

    service = environ.get("SERVICE_NAME") or environ.get("K_SERVICE")
    service_context: dict[str, str] | None = None
    if service:
        service_context = {"service": service}
        version = environ.get("SERVICE_VERSION") or environ.get("K_REVISION")
        if version:
            service_context["version"] = version

    raw_labels = environ.get("LOG_LABELS", "")
    return Options(
        log_name=environ.get("LOG_NAME") or DEFAULT_LOG_NAME,
        prefix=environ.get("LOG_PREFIX") or None,
        labels=_parse_labels(raw_labels) if raw_labels else None,
        service_context=service_context,
        project_id=environ.get("GOOGLE_CLOUD_PROJECT") or None,
        redirect_to_stdout=_env_flag(environ, "LOG_REDIRECT_TO_STDOUT"),
        use_message_field=_env_flag(environ, "LOG_USE_MESSAGE_FIELD"),
        inspect_metadata=_env_flag(environ, "LOG_INSPECT_METADATA"),
    )


def _stream_isatty(stream: Any) -> bool:
    """Check if *stream* is connected to a terminal."""
    try:
        result: bool = stream.isatty()
        return result
    except (AttributeError, ValueError):
        return False


def _build_processors(
    *,
    labels: Mapping[str, str] | None = None,
    trace_project_id: str | None = None,
) -> list[structlog.types.Processor]:
    """Build the structlog processor chain that feeds the cloud handler."""
    processors: list[structlog.types.Processor] = [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        normalize_level,  # type: ignore[list-item]
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,  # type: ignore[list-item]
    ]
    if labels:
        processors.append(add_labels(labels))  # type: ignore[arg-type]
    processors += [
        add_trace_context(trace_project_id),  # type: ignore[list-item]
        StackInfoProcessor(),
        StackProcessor(),
        structlog.processors.UnicodeDecoder(),
        ensure_event_is_str,  # type: ignore[list-item]
    ]
    return processors


def configure_structlog(
    options: Options | None = None,
    *,
    level: str = "INFO",
    labels: Mapping[str, str] | None = None,
    trace_project_id: str | None = None,
    console: bool = False,
    stream: Any = None,
    clear_handlers: bool = True,
) -> CloudLoggingHandler:
    """Send structlog and stdlib logging to Cloud Logging.

    Parameters
    ----------
    options:
        Adapter configuration.  Defaults to :func:`options_from_env`.
    level:
        Minimum log level (e.g. ``"DEBUG"``, ``"INFO"``).
    labels:
        Labels added to every structlog event (per-event labels win).
    trace_project_id:
        Project used to qualify OpenTelemetry trace ids.
    console:
        Also render events on *stream* with structlog's console renderer.
    stream:
        Output stream for the synchronous sink and the console mirror.
        Defaults to ``sys.stdout``.
    clear_handlers:
        If ``True`` (default), remove all existing root logger handlers
        (closing any previous cloud handler) before adding the new one.

    Returns
    -------
    CloudLoggingHandler
        The handler installed on the root logger.
    """
    if options is None:
        options = options_from_env()
    if stream is None:
        stream = sys.stdout

    structlog.configure(
        processors=[
            *_build_processors(labels=labels, trace_project_id=trace_project_id),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            _to_logging_level(level),
        ),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    if clear_handlers:
        for old in root.handlers:
            if isinstance(old, CloudLoggingHandler):
                old.close()
        root.handlers.clear()
    root.setLevel(_to_logging_level(level))

    handler = CloudLoggingHandler(options, stream=stream)
    root.addHandler(handler)

    if console:
        console_handler = logging.StreamHandler(stream)
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(colors=_stream_isatty(stream)),
                ],
            )
        )
        root.addHandler(console_handler)

    return handler


def setup_cloud_logging(
    *,
    suppress_loggers: Sequence[str] = (),
) -> CloudLoggingHandler:
    """Application-level logging setup.

    Reads ``LOG_LEVEL`` (default: ``"INFO"``) and ``LOG_CONSOLE``
    (``"1"`` mirrors events to the console) plus everything
    :func:`options_from_env` reads, then installs an excepthook that logs
    uncaught exceptions before the process exits.

    Parameters
    ----------
    suppress_loggers:
        Logger names to suppress to WARNING level.
    """
    level = os.environ.get("LOG_LEVEL", "INFO")
    console = _env_flag(os.environ, "LOG_CONSOLE")

    handler = configure_structlog(level=level, console=console)

    for name in suppress_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    def _log_exception(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: Any,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logging.getLogger().critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
        )
        handler.flush()

    sys.excepthook = _log_exception
    return handler
