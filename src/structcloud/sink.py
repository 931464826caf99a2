"""Cloud log sinks.

:class:`Logging` holds the options used to reach the Cloud Logging API and
hands out two kinds of log handles:

*   :class:`Log`: asynchronous.  Writes are queued and committed in order
    by a background thread through ``google-cloud-logging``; the completion
    callback runs on that thread.
*   :class:`LogSync`: synchronous.  Each entry is rendered as one JSON line
    on a stream (``sys.stdout`` by default) for a logging agent to collect;
    the callback runs before the write method returns.

Both expose :meth:`entry` and one write method per severity name.
"""

from __future__ import annotations

import atexit
import logging
import sys
import threading
from collections.abc import Callable, Sequence
from datetime import datetime
from queue import Queue
from typing import Any, TypeAlias

import google.auth
from google.cloud import logging as gcl_logging

from structcloud.entry import MAX_ENTRY_SIZE, Entry, prepare_payload

Callback: TypeAlias = Callable[[BaseException | None, Any], None]

DEFAULT_SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/logging.write",)

_logger = logging.getLogger(__name__)

# Entry metadata key -> ``Logger.log_struct`` keyword.
_ROUTING_KWARGS: dict[str, str] = {
    "labels": "labels",
    "trace": "trace",
    "spanId": "span_id",
    "traceSampled": "trace_sampled",
    "httpRequest": "http_request",
}


def _coerce_timestamp(value: Any) -> datetime | None:
    """Return *value* as a :class:`datetime`, parsing ISO 8601 strings.

    ``None`` is returned for anything the API client cannot render.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        if value.endswith(("Z", "z")):
            value = value[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def noop(_error: BaseException | None = None, _response: Any = None) -> None:
    """Default completion callback."""


class _SeverityWriters:
    """One write method per cloud severity, all delegating to :meth:`write`."""

    def entry(self, metadata: dict[str, Any], data: Any) -> Entry:
        return Entry(metadata, data)

    def write(
        self,
        entries: Sequence[Entry],
        severity: str,
        callback: Callback | None = None,
    ) -> None:
        raise NotImplementedError

    def emergency(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "emergency", callback)

    def alert(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "alert", callback)

    def critical(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "critical", callback)

    def error(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "error", callback)

    def warning(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "warning", callback)

    def notice(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "notice", callback)

    def info(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "info", callback)

    def debug(self, entries: Sequence[Entry], callback: Callback | None = None) -> None:
        self.write(entries, "debug", callback)


class Logging:
    """Connection options for the Cloud Logging API.

    The API client is created lazily, on the first asynchronous write, so
    building a :class:`Log` never performs I/O.

    Parameters
    ----------
    scopes:
        OAuth scopes for default credentials.  A single string is accepted.
    project_id:
        Target project.  Detected from the environment when ``None``.
    credentials:
        Explicit credentials; *scopes* are ignored when given.
    client_options:
        Passed through to :class:`google.cloud.logging.Client`.
    """

    def __init__(
        self,
        *,
        scopes: str | Sequence[str] | None = None,
        project_id: str | None = None,
        credentials: Any = None,
        client_options: Any = None,
    ) -> None:
        if scopes is None:
            scopes = DEFAULT_SCOPES
        elif isinstance(scopes, str):
            scopes = (scopes,)
        self.scopes = list(scopes)
        self.project_id = project_id
        self.credentials = credentials
        self.client_options = client_options
        self._client: Any = None
        self._lock = threading.Lock()

    def client(self) -> Any:
        """Return the shared :class:`google.cloud.logging.Client`."""
        with self._lock:
            if self._client is None:
                credentials = self.credentials
                project = self.project_id
                if credentials is None:
                    credentials, detected = google.auth.default(scopes=self.scopes)
                    project = project or detected
                self._client = gcl_logging.Client(
                    project=project,
                    credentials=credentials,
                    client_options=self.client_options,
                )
            return self._client

    def log(
        self,
        name: str,
        *,
        remove_circular: bool = True,
        max_entry_size: int | None = MAX_ENTRY_SIZE,
    ) -> Log:
        return Log(self, name, remove_circular=remove_circular, max_entry_size=max_entry_size)

    def log_sync(
        self,
        name: str,
        *,
        stream: Any = None,
        use_message_field: bool = False,
        remove_circular: bool = True,
        max_entry_size: int | None = MAX_ENTRY_SIZE,
    ) -> LogSync:
        return LogSync(
            self,
            name,
            stream=stream,
            use_message_field=use_message_field,
            remove_circular=remove_circular,
            max_entry_size=max_entry_size,
        )


class Log(_SeverityWriters):
    """Asynchronous, batched log handle.

    Each write call becomes one API batch.  Batches are committed in the
    order they were written by a single daemon thread, started on first
    use and stopped via :func:`atexit.register`.
    """

    def __init__(
        self,
        logging_: Logging,
        name: str,
        *,
        remove_circular: bool = True,
        max_entry_size: int | None = MAX_ENTRY_SIZE,
    ) -> None:
        self.logging = logging_
        self.name = name
        self.remove_circular = remove_circular
        self.max_entry_size = max_entry_size
        self._queue: Queue[tuple[str, list[Entry], Callback] | None] = Queue()
        self._worker: threading.Thread | None = None
        self._registered = False
        self._lock = threading.Lock()

    def write(
        self,
        entries: Sequence[Entry],
        severity: str,
        callback: Callback | None = None,
    ) -> None:
        self._ensure_worker()
        self._queue.put((severity, list(entries), callback or noop))

    def flush(self) -> None:
        """Block until every queued batch has been committed."""
        if self._worker is not None:
            self._queue.join()

    def close(self, timeout: float | None = 5.0) -> None:
        """Commit pending batches and stop the worker thread."""
        with self._lock:
            worker = self._worker
            self._worker = None
            registered = self._registered
            self._registered = False
        if registered:
            atexit.unregister(self.close)
        if worker is None:
            return
        self._queue.put(None)
        worker.join(timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run,
                name=f"structcloud-{self.name}",
                daemon=True,
            )
            self._worker.start()
            register = not self._registered
            self._registered = True
        if register:
            atexit.register(self.close)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self._commit(*item)
            finally:
                self._queue.task_done()

    def _commit(self, severity: str, entries: list[Entry], callback: Callback) -> None:
        try:
            batch = self.logging.client().logger(self.name).batch()
            for entry in entries:
                batch.log_struct(
                    prepare_payload(
                        entry.data,
                        remove_circular_refs=self.remove_circular,
                        max_entry_size=self.max_entry_size,
                    ),
                    severity=severity.upper(),
                    **self._routing_kwargs(entry),
                )
            batch.commit()
        except Exception as exc:
            if callback is noop:
                _logger.warning(
                    "Failed to write %d entries to %s", len(entries), self.name, exc_info=True
                )
            self._notify(callback, exc)
            return
        self._notify(callback, None)

    def _notify(self, callback: Callback, error: BaseException | None) -> None:
        try:
            callback(error, None)
        except Exception:
            _logger.exception("Completion callback for %s raised", self.name)

    @staticmethod
    def _routing_kwargs(entry: Entry) -> dict[str, Any]:
        meta = entry.metadata
        kwargs: dict[str, Any] = {}
        resource = meta.get("resource")
        if resource is not None:
            kwargs["resource"] = gcl_logging.Resource(
                type=resource.get("type", "global"),
                labels=dict(resource.get("labels", {})),
            )
        for key, kwarg in _ROUTING_KWARGS.items():
            if key in meta:
                kwargs[kwarg] = meta[key]
        if "timestamp" in meta:
            timestamp = _coerce_timestamp(meta["timestamp"])
            if timestamp is not None:
                kwargs["timestamp"] = timestamp
        return kwargs


class LogSync(_SeverityWriters):
    """Synchronous log handle writing one JSON line per entry.

    Parameters
    ----------
    stream:
        Output stream.  Defaults to the current ``sys.stdout``.
    use_message_field:
        Nest the entry payload under ``message`` instead of spreading its
        keys at the top level of the line.
    """

    def __init__(
        self,
        logging_: Logging,
        name: str,
        *,
        stream: Any = None,
        use_message_field: bool = False,
        remove_circular: bool = True,
        max_entry_size: int | None = MAX_ENTRY_SIZE,
    ) -> None:
        self.logging = logging_
        self.name = name
        self.use_message_field = use_message_field
        self.remove_circular = remove_circular
        self.max_entry_size = max_entry_size
        self._stream = stream
        self._lock = threading.Lock()

    def write(
        self,
        entries: Sequence[Entry],
        severity: str,
        callback: Callback | None = None,
    ) -> None:
        callback = callback or noop
        stream = self._stream if self._stream is not None else sys.stdout
        try:
            lines = "".join(
                entry.to_json(
                    severity,
                    use_message_field=self.use_message_field,
                    remove_circular_refs=self.remove_circular,
                    max_entry_size=self.max_entry_size,
                )
                + "\n"
                for entry in entries
            )
            with self._lock:
                stream.write(lines)
                stream.flush()
        except Exception as exc:
            callback(exc, None)
            return
        callback(None, None)
