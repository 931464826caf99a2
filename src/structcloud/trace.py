"""Process-wide trace agent lookup.

A trace agent is any object exposing ``get_current_context_id()`` and
``get_writer_project_id()``.  When one is installed, entries that carry no
explicit trace keys are correlated with the agent's current trace.

:class:`OpenTelemetryTraceAgent` reads the active OpenTelemetry span and
gracefully degrades to "no trace" when ``opentelemetry-api`` is not
installed.
"""

from __future__ import annotations

import os
from typing import Any, Protocol


class TraceAgent(Protocol):
    def get_current_context_id(self) -> str | None: ...

    def get_writer_project_id(self) -> str | None: ...


_agent: Any = None


def set_trace_agent(agent: Any) -> Any:
    """Install *agent* as the process-wide trace agent; return the previous one."""
    global _agent
    previous = _agent
    _agent = agent
    return previous


def get_trace_agent() -> Any:
    return _agent


def current_trace_resource() -> str | None:
    """Return ``projects/{project}/traces/{trace}`` from the installed agent.

    Both identifiers must be available; a missing agent, a missing method,
    or a ``None`` result from either method yields ``None``.
    """
    agent = _agent
    if agent is None:
        return None
    get_context_id = getattr(agent, "get_current_context_id", None)
    get_project_id = getattr(agent, "get_writer_project_id", None)
    if not callable(get_context_id) or not callable(get_project_id):
        return None
    context_id = get_context_id()
    project_id = get_project_id()
    if context_id is None or project_id is None:
        return None
    return f"projects/{project_id}/traces/{context_id}"


class OpenTelemetryTraceAgent:
    """Trace agent backed by the current OpenTelemetry span.

    Parameters
    ----------
    project_id:
        Project that owns the traces.  Defaults to the
        ``GOOGLE_CLOUD_PROJECT`` environment variable.
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._project_id = project_id

    def get_current_context_id(self) -> str | None:
        try:
            from opentelemetry import trace

            ctx = trace.get_current_span().get_span_context()
            if ctx and ctx.is_valid:
                return format(ctx.trace_id, "032x")
        except ImportError:
            pass
        return None

    def get_writer_project_id(self) -> str | None:
        return self._project_id or os.environ.get("GOOGLE_CLOUD_PROJECT") or None
