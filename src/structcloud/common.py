"""Translate leveled log calls into cloud log entries.

:class:`LoggingCommon` is the framework-agnostic core shared by the stdlib
handler and the structlog integration.  A call::

    common.log("error", "request failed", {"labels": {"route": "/x"}})

is validated against the configured level table, its metadata is split
into routing fields (entry metadata) and payload fields (entry data), and
the resulting entries are handed to the cloud log's write method named
after the resolved severity.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from structcloud import instrumentation
from structcloud.entry import (
    LOGGING_SAMPLED_KEY,
    LOGGING_SPAN_KEY,
    LOGGING_TRACE_KEY,
    MAX_ENTRY_SIZE,
    Entry,
)
from structcloud.severity import resolve_severity
from structcloud.sink import Callback, Logging, noop
from structcloud.trace import current_trace_resource

# Verbosity codes of the npm-style level names most leveled loggers use.
DEFAULT_LEVELS: dict[str, int] = {
    "error": 3,
    "warn": 4,
    "info": 6,
    "http": 6,
    "verbose": 7,
    "debug": 7,
    "silly": 7,
}

# Python :mod:`logging` level names.
PYTHON_LEVELS: dict[str, int] = {
    "critical": 2,
    "error": 3,
    "warning": 4,
    "info": 6,
    "debug": 7,
}

DEFAULT_LOG_NAME = "structcloud_log"
DEFAULT_RESOURCE: dict[str, Any] = {"type": "global"}

# Metadata keys moved verbatim into entry metadata.
_PROMOTED_KEYS: tuple[str, ...] = ("httpRequest", "timestamp")

_TRACE_KEYS: dict[str, str] = {
    LOGGING_TRACE_KEY: "trace",
    LOGGING_SPAN_KEY: "spanId",
    LOGGING_SAMPLED_KEY: "traceSampled",
}

__all__ = [
    "DEFAULT_LEVELS",
    "LOGGING_SAMPLED_KEY",
    "LOGGING_SPAN_KEY",
    "LOGGING_TRACE_KEY",
    "LoggingCommon",
    "Options",
    "PYTHON_LEVELS",
    "PromotedFields",
    "split_metadata",
]


@dataclass
class Options:
    """Adapter configuration.

    Only ``scopes``, ``project_id``, ``credentials`` and ``client_options``
    are forwarded to :class:`~structcloud.sink.Logging`; everything else is
    consumed by the adapter.
    """

    log_name: str = DEFAULT_LOG_NAME
    levels: Mapping[str, int] | None = None
    resource: Mapping[str, Any] | None = None
    service_context: Mapping[str, Any] | None = None
    labels: Mapping[str, str] | None = None
    prefix: str | None = None
    inspect_metadata: bool = False
    redirect_to_stdout: bool = False
    use_message_field: bool = False
    scopes: str | Sequence[str] | None = None
    project_id: str | None = None
    credentials: Any = None
    client_options: Any = None

    def logging_options(self) -> dict[str, Any]:
        """Return the keyword arguments forwarded to the sink constructor."""
        return {
            "scopes": self.scopes,
            "project_id": self.project_id,
            "credentials": self.credentials,
            "client_options": self.client_options,
        }


@dataclass
class PromotedFields:
    """Routing fields pulled out of a call's metadata."""

    http_request: Any = None
    timestamp: Any = None
    labels: dict[str, str] = field(default_factory=dict)
    trace: dict[str, Any] = field(default_factory=dict)


def _parse_sampled(value: Any) -> bool:
    return value is True or value == "1"


def split_metadata(
    metadata: Mapping[str, Any],
    *,
    consume: bool = True,
) -> tuple[PromotedFields, dict[str, Any]]:
    """Separate routing fields from payload fields.

    Returns the promoted fields and the residual payload.  With
    ``consume=False`` only labels and trace keys are read and the residual
    is an unmodified copy; ``httpRequest`` and ``timestamp`` stay put.
    """
    promoted = PromotedFields()
    residual: dict[str, Any] = {}
    for key, value in metadata.items():
        if key == "labels" and isinstance(value, Mapping):
            promoted.labels.update(value)
            if consume:
                continue
        elif key in _TRACE_KEYS:
            name = _TRACE_KEYS[key]
            if value is not None:
                promoted.trace[name] = _parse_sampled(value) if name == "traceSampled" else value
            if consume:
                continue
        elif consume and key in _PROMOTED_KEYS:
            if key == "httpRequest":
                promoted.http_request = value
            else:
                promoted.timestamp = value
            continue
        residual[key] = value
    return promoted, residual


class LoggingCommon:
    """Build cloud log entries from ``(level, message, metadata)`` calls.

    Parameters
    ----------
    options:
        Adapter configuration.  Defaults to :class:`Options` with all
        defaults applied.
    stream:
        Output stream for the synchronous sink (``redirect_to_stdout``).
    """

    def __init__(self, options: Options | None = None, *, stream: Any = None) -> None:
        if options is None:
            options = Options()
        self.options = options
        self.log_name = options.log_name
        self.levels: dict[str, int] = dict(
            options.levels if options.levels is not None else DEFAULT_LEVELS
        )
        self.resource: dict[str, Any] = dict(
            options.resource if options.resource is not None else DEFAULT_RESOURCE
        )
        self.service_context = options.service_context
        self.labels = options.labels
        self.prefix = options.prefix
        self.inspect_metadata = options.inspect_metadata

        logging_ = Logging(**options.logging_options())
        if options.redirect_to_stdout:
            self.cloud_log: Any = logging_.log_sync(
                self.log_name,
                stream=stream,
                use_message_field=options.use_message_field,
                remove_circular=True,
                max_entry_size=MAX_ENTRY_SIZE,
            )
        else:
            self.cloud_log = logging_.log(
                self.log_name,
                remove_circular=True,
                max_entry_size=MAX_ENTRY_SIZE,
            )

    def log(
        self,
        level: str,
        message: str,
        metadata: Mapping[str, Any] | None = None,
        callback: Callback | None = None,
    ) -> None:
        """Write one log call to the cloud log.

        Raises
        ------
        UnknownLevelError
            If *level* is not in :attr:`levels`.  Nothing is written.
        """
        severity = resolve_severity(level, self.levels)
        if metadata is None:
            metadata = {}
        if callback is None:
            callback = noop

        entry_metadata: dict[str, Any] = {"resource": self.resource}

        payload: Any = metadata
        promoted = PromotedFields()
        stack = metadata.get("stack") if isinstance(metadata, Mapping) else None
        if stack:
            message = f"{message} {stack}" if message else str(stack)
            promoted, _ = split_metadata(metadata, consume=False)
        elif isinstance(metadata, Mapping):
            promoted, payload = split_metadata(metadata)
            if self.inspect_metadata:
                payload = {key: repr(value) for key, value in payload.items()}
            if promoted.http_request is not None:
                entry_metadata["httpRequest"] = promoted.http_request
            if promoted.timestamp is not None:
                entry_metadata["timestamp"] = promoted.timestamp

        labels = {**(self.labels or {}), **promoted.labels}
        if labels:
            entry_metadata["labels"] = labels

        if promoted.trace:
            entry_metadata.update(promoted.trace)
        else:
            trace = current_trace_resource()
            if trace is not None:
                entry_metadata["trace"] = trace

        if self.prefix:
            message = f"[{self.prefix}] {message}"

        data: dict[str, Any] = {"message": message, "metadata": payload}
        if stack and self.service_context is not None:
            data["serviceContext"] = self.service_context

        entries: list[Entry] = [self.cloud_log.entry(entry_metadata, data)]
        diagnostic = self._diagnostic_entry()
        if diagnostic is not None and severity == "info":
            entries.append(diagnostic)
            diagnostic = None

        getattr(self.cloud_log, severity)(entries, callback)
        if diagnostic is not None:
            self.cloud_log.info([diagnostic], noop)

    def _diagnostic_entry(self) -> Entry | None:
        """Build the one-per-process instrumentation entry, if still owed."""
        if not instrumentation.claim_instrumentation():
            return None
        return self.cloud_log.entry(
            {"resource": self.resource},
            instrumentation.diagnostic_payload(),
        )

