"""Shared fixtures for structcloud tests."""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog

from structcloud import instrumentation, trace
from structcloud.entry import Entry
from structcloud.severity import SEVERITIES


@pytest.fixture(autouse=True)
def _reset_logging() -> None:  # type: ignore[misc]
    """Reset root logger handlers and level after each test."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level

    yield  # type: ignore[misc]

    root.handlers[:] = original_handlers
    root.setLevel(original_level)


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:  # type: ignore[misc]
    """Reset structlog configuration after each test."""
    yield  # type: ignore[misc]
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _instrumentation_sent() -> None:  # type: ignore[misc]
    """Mark the diagnostic entry as already sent unless a test resets it."""
    original = instrumentation.get_instrumentation_status()
    instrumentation.set_instrumentation_status(True)
    yield  # type: ignore[misc]
    instrumentation.set_instrumentation_status(original)


@pytest.fixture(autouse=True)
def _reset_trace_agent() -> None:  # type: ignore[misc]
    """Remove any trace agent installed by a test."""
    previous = trace.set_trace_agent(None)
    yield  # type: ignore[misc]
    trace.set_trace_agent(previous)


class RecordingLog:
    """Stand-in cloud log that records built entries and writes."""

    def __init__(self) -> None:
        self.built: list[tuple[dict[str, Any], Any]] = []
        self.writes: list[tuple[str, list[Entry], Any]] = []

    def entry(self, metadata: dict[str, Any], data: Any) -> Entry:
        self.built.append((metadata, data))
        return Entry(metadata, data)

    def __getattr__(self, name: str) -> Any:
        if name not in SEVERITIES:
            raise AttributeError(name)

        def _write(entries: list[Entry], callback: Any = None) -> None:
            self.writes.append((name, list(entries), callback))

        return _write


@pytest.fixture
def recording_log() -> RecordingLog:
    return RecordingLog()
