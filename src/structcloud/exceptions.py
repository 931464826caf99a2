"""Exception rendering for cloud entries.

Entries whose metadata carries a ``stack`` are reported as errors (the
stack is appended to the message and the service context is attached).
:class:`StackProcessor` turns structlog's ``exc_info`` into that shape;
:class:`StackInfoProcessor` keeps ``stack_info`` output out of it.
"""

from __future__ import annotations

import sys
import traceback
from types import TracebackType
from typing import Any, TypeAlias

import structlog

ExcInfo: TypeAlias = "tuple[type[BaseException], BaseException, TracebackType | None]"

_MISSING = object()


def normalize_exc_info(exc_info: Any) -> ExcInfo | None:
    """Coerce ``True``, an exception instance, or a tuple to an exc_info tuple."""
    if not exc_info:
        return None
    if isinstance(exc_info, BaseException):
        return (type(exc_info), exc_info, exc_info.__traceback__)
    if exc_info is True:
        exc_info = sys.exc_info()
    if not isinstance(exc_info, tuple) or len(exc_info) != 3 or exc_info[0] is None:
        return None
    return exc_info  # type: ignore[return-value]


def format_stack(exc_info: ExcInfo, *, max_frames: int | None = None) -> str:
    """Render *exc_info* the way the interpreter prints an uncaught exception."""
    exc_type, exc_value, exc_tb = exc_info
    # A negative limit keeps the innermost frames.
    limit = -max_frames if max_frames is not None else None
    return "".join(
        traceback.format_exception(exc_type, exc_value, exc_tb, limit=limit)
    ).rstrip("\n")


def describe_exception(exc_value: BaseException) -> dict[str, Any]:
    """Summarize *exc_value* and its direct cause as a JSON-friendly dict."""
    exc_type = type(exc_value)
    summary: dict[str, Any] = {
        "type": exc_type.__qualname__,
        "message": str(exc_value),
        "module": exc_type.__module__,
    }
    cause = exc_value.__cause__
    if cause is None and not exc_value.__suppress_context__:
        cause = exc_value.__context__
    if cause is not None:
        summary["cause"] = {
            "type": type(cause).__qualname__,
            "message": str(cause),
        }
    return summary


class StackProcessor:
    """Replace ``exc_info`` with ``stack`` and ``exception`` fields.

    Parameters
    ----------
    max_frames:
        Maximum number of traceback frames rendered into ``stack``.
        ``None`` renders all of them.
    """

    def __init__(self, *, max_frames: int | None = None) -> None:
        self._max_frames = max_frames

    def __call__(
        self,
        _logger: Any,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        exc_info = normalize_exc_info(event_dict.get("exc_info"))
        if exc_info is None:
            return event_dict

        event_dict["stack"] = format_stack(exc_info, max_frames=self._max_frames)
        event_dict["exception"] = describe_exception(exc_info[1])
        event_dict.pop("exc_info", None)
        return event_dict


class StackInfoProcessor:
    """Render ``stack_info=True`` into a ``stack_info`` field.

    structlog's :class:`~structlog.processors.StackInfoRenderer` writes to
    ``stack``, which marks an entry as an error.  The rendered call stack is
    moved to ``stack_info`` and any existing ``stack`` is left in place.
    """

    def __init__(self) -> None:
        self._renderer = structlog.processors.StackInfoRenderer(
            additional_ignores=["structcloud"],
        )

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        if not event_dict.get("stack_info"):
            event_dict.pop("stack_info", None)
            return event_dict

        stack = event_dict.pop("stack", _MISSING)
        event_dict = self._renderer(logger, method_name, event_dict)
        event_dict["stack_info"] = event_dict.pop("stack")
        if stack is not _MISSING:
            event_dict["stack"] = stack
        return event_dict
