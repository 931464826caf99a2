"""Structlog processors that shape events for cloud entries.

- ``level``: normalized to a Python :mod:`logging` level name
  (``critical``, ``error``, ``warning``, ``info``, ``debug``).
- ``timestamp``: UTC time of the call, unless already set.
- ``labels``: static labels merged under the per-event ``labels`` key.
- trace keys: the active OpenTelemetry span copied into the
  ``logging.googleapis.com/*`` keys the adapter promotes.
- ``event``: guaranteed to be a string.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from structcloud.entry import LOGGING_SAMPLED_KEY, LOGGING_SPAN_KEY, LOGGING_TRACE_KEY

LEVEL_ALIASES: dict[str, str] = {
    "trace": "debug",
    "debug": "debug",
    "info": "info",
    "success": "info",
    "notset": "info",
    "warning": "warning",
    "warn": "warning",
    "error": "error",
    "exception": "error",
    "critical": "critical",
    "fatal": "critical",
}


def normalize_level(
    _logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Normalize the log level to a :data:`~structcloud.common.PYTHON_LEVELS` key."""
    raw_level = str(event_dict.get("level", method_name)).lower()
    event_dict["level"] = LEVEL_ALIASES.get(raw_level, raw_level)
    return event_dict


def add_timestamp(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Stamp the event with a timezone-aware UTC ``timestamp``.

    A :class:`~datetime.datetime` rather than a string, so it can be
    promoted to the entry's timestamp unchanged.
    """
    event_dict.setdefault("timestamp", datetime.now(timezone.utc))
    return event_dict


def add_labels(
    labels: Mapping[str, str],
) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Return a processor that adds *labels* under the event's ``labels`` key.

    Labels already present on the event win over *labels*.
    """

    def _processor(
        _logger: Any,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        event_dict["labels"] = {**labels, **event_dict.get("labels", {})}
        return event_dict

    return _processor


def add_trace_context(
    project_id: str | None = None,
) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Return a processor copying the current OpenTelemetry span into trace keys.

    With *project_id* the trace is written as a full
    ``projects/{project}/traces/{trace}`` resource name.  Events that already
    carry a trace key are left alone.  A no-op without ``opentelemetry-api``.
    """

    def _processor(
        _logger: Any,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        if LOGGING_TRACE_KEY in event_dict:
            return event_dict
        try:
            from opentelemetry import trace

            ctx = trace.get_current_span().get_span_context()
            if ctx and ctx.is_valid:
                trace_id = format(ctx.trace_id, "032x")
                if project_id:
                    trace_id = f"projects/{project_id}/traces/{trace_id}"
                event_dict[LOGGING_TRACE_KEY] = trace_id
                event_dict[LOGGING_SPAN_KEY] = format(ctx.span_id, "016x")
                event_dict[LOGGING_SAMPLED_KEY] = "1" if ctx.trace_flags.sampled else "0"
        except ImportError:
            pass
        return event_dict

    return _processor


def ensure_event_is_str(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure the main log message (``event``) is a string."""
    event = event_dict.get("event")
    if event is not None and not isinstance(event, str):
        event_dict["event"] = str(event)
    return event_dict
