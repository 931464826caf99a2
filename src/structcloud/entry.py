"""Log entry value and JSON rendering.

An :class:`Entry` pairs *routing* metadata (``resource``, ``labels``,
``trace``, ``spanId``, ``traceSampled``, ``httpRequest``, ``timestamp``)
with the *payload* data that becomes the entry's JSON body.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import orjson

LOGGING_TRACE_KEY = "logging.googleapis.com/trace"
LOGGING_SPAN_KEY = "logging.googleapis.com/spanId"
LOGGING_SAMPLED_KEY = "logging.googleapis.com/trace_sampled"
LOGGING_LABELS_KEY = "logging.googleapis.com/labels"

MAX_ENTRY_SIZE = 250000

CIRCULAR_MARKER = "[Circular]"
TRUNCATED_MARKER = "...[truncated]"


def dumps(obj: Any) -> bytes:
    """Serialize *obj* with orjson, falling back to ``str()`` for unknown types."""
    return orjson.dumps(obj, default=str, option=orjson.OPT_NON_STR_KEYS)


def remove_circular(value: Any) -> Any:
    """Return a copy of *value* with reference cycles replaced by a marker.

    Only containers on the current path count as cycles; an object shared
    by two sibling branches is copied into both.
    """
    return _copy_acyclic(value, set())


def _copy_acyclic(value: Any, ancestors: set[int]) -> Any:
    if not isinstance(value, (dict, list, tuple)):
        return value
    obj_id = id(value)
    if obj_id in ancestors:
        return CIRCULAR_MARKER
    ancestors.add(obj_id)
    try:
        if isinstance(value, dict):
            return {k: _copy_acyclic(v, ancestors) for k, v in value.items()}
        return [_copy_acyclic(item, ancestors) for item in value]
    finally:
        ancestors.discard(obj_id)


def truncate_message(struct: dict[str, Any], max_size: int) -> dict[str, Any]:
    """Shorten ``struct["message"]`` until the rendered JSON fits *max_size* bytes.

    When ``message`` is itself a mapping (a payload nested under
    ``message``), its own string ``message`` is shortened instead.
    Structures without such a string are returned unchanged.
    """
    for _ in range(8):
        excess = len(dumps(struct)) - max_size
        if excess <= 0:
            break
        message = struct.get("message")
        inner = message.get("message") if isinstance(message, Mapping) else None
        if isinstance(message, str) and message:
            struct = {**struct, "message": _shorten(message, excess)}
        elif isinstance(inner, str) and inner:
            struct = {**struct, "message": {**message, "message": _shorten(inner, excess)}}
        else:
            break
    return struct


def _shorten(text: str, excess: int) -> str:
    raw = text.encode("utf-8")
    keep = max(len(raw) - excess - len(TRUNCATED_MARKER), 0)
    return raw[:keep].decode("utf-8", errors="ignore") + TRUNCATED_MARKER


def prepare_payload(
    value: Any,
    *,
    remove_circular_refs: bool = True,
    max_entry_size: int | None = MAX_ENTRY_SIZE,
) -> Any:
    """Apply the sink-side circular-reference and size policies to *value*."""
    if remove_circular_refs:
        value = remove_circular(value)
    if max_entry_size is not None and isinstance(value, dict):
        value = truncate_message(value, max_entry_size)
    return value


@dataclass(frozen=True)
class Entry:
    """A single log entry, immutable once built."""

    metadata: Mapping[str, Any]
    data: Any

    def to_structured(
        self,
        severity: str,
        *,
        use_message_field: bool = False,
    ) -> dict[str, Any]:
        """Render the entry with the structured-logging field names.

        With *use_message_field* a mapping payload is nested under
        ``message``; otherwise its keys are spread at the top level.
        """
        out: dict[str, Any] = {"severity": severity.upper()}
        meta = self.metadata
        if "timestamp" in meta:
            out["timestamp"] = meta["timestamp"]
        if "httpRequest" in meta:
            out["httpRequest"] = meta["httpRequest"]
        if "labels" in meta:
            out[LOGGING_LABELS_KEY] = meta["labels"]
        if "trace" in meta:
            out[LOGGING_TRACE_KEY] = meta["trace"]
        if "spanId" in meta:
            out[LOGGING_SPAN_KEY] = meta["spanId"]
        if "traceSampled" in meta:
            out[LOGGING_SAMPLED_KEY] = meta["traceSampled"]

        if isinstance(self.data, Mapping) and not use_message_field:
            out.update(self.data)
        else:
            out["message"] = self.data
        return out

    def to_json(
        self,
        severity: str,
        *,
        use_message_field: bool = False,
        remove_circular_refs: bool = True,
        max_entry_size: int | None = MAX_ENTRY_SIZE,
    ) -> str:
        struct = prepare_payload(
            self.to_structured(severity, use_message_field=use_message_field),
            remove_circular_refs=remove_circular_refs,
            max_entry_size=max_entry_size,
        )
        return dumps(struct).decode()
