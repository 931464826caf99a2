"""Tests for structcloud.processors."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from structcloud.common import PYTHON_LEVELS
from structcloud.entry import LOGGING_SAMPLED_KEY, LOGGING_SPAN_KEY, LOGGING_TRACE_KEY
from structcloud.processors import (
    LEVEL_ALIASES,
    add_labels,
    add_timestamp,
    add_trace_context,
    ensure_event_is_str,
    normalize_level,
)


def _otel_modules(*, valid: bool, sampled: bool = True) -> dict:
    mock_ctx = MagicMock()
    mock_ctx.is_valid = valid
    mock_ctx.trace_id = 0x0AF7651916CD43DD8448EB211C80319C
    mock_ctx.span_id = 0x00F067AA0BA902B7
    mock_ctx.trace_flags.sampled = sampled

    mock_span = MagicMock()
    mock_span.get_span_context.return_value = mock_ctx

    mock_trace = MagicMock()
    mock_trace.get_current_span.return_value = mock_span

    mock_otel = MagicMock()
    mock_otel.trace = mock_trace
    return {"opentelemetry": mock_otel, "opentelemetry.trace": mock_trace}


class TestLevelAliases:
    def test_all_aliases_resolve_to_python_levels(self) -> None:
        for alias in LEVEL_ALIASES.values():
            assert alias in PYTHON_LEVELS

    def test_canonical_values(self) -> None:
        assert LEVEL_ALIASES["trace"] == "debug"
        assert LEVEL_ALIASES["success"] == "info"
        assert LEVEL_ALIASES["warn"] == "warning"
        assert LEVEL_ALIASES["fatal"] == "critical"
        assert LEVEL_ALIASES["exception"] == "error"


class TestNormalizeLevel:
    def test_normalizes_known_levels(self) -> None:
        for raw, expected in [
            ("DEBUG", "debug"),
            ("warn", "warning"),
            ("fatal", "critical"),
            ("exception", "error"),
        ]:
            event_dict: dict = {"level": raw}
            result = normalize_level(None, raw, event_dict)
            assert result["level"] == expected

    def test_falls_back_to_method_name(self) -> None:
        result = normalize_level(None, "info", {})
        assert result["level"] == "info"

    def test_unknown_level_lowercased(self) -> None:
        result = normalize_level(None, "custom", {"level": "CUSTOM"})
        assert result["level"] == "custom"


class TestAddTimestamp:
    def test_adds_aware_datetime(self) -> None:
        result = add_timestamp(None, "info", {})
        assert isinstance(result["timestamp"], datetime)
        assert result["timestamp"].tzinfo is timezone.utc

    def test_keeps_existing(self) -> None:
        result = add_timestamp(None, "info", {"timestamp": "given"})
        assert result["timestamp"] == "given"


class TestAddLabels:
    def test_adds_labels(self) -> None:
        processor = add_labels({"env": "prod"})
        assert processor(None, "info", {})["labels"] == {"env": "prod"}

    def test_event_labels_win(self) -> None:
        processor = add_labels({"env": "prod", "team": "core"})
        result = processor(None, "info", {"labels": {"env": "dev"}})
        assert result["labels"] == {"env": "dev", "team": "core"}


class TestAddTraceContext:
    def test_adds_prefixed_trace_keys(self) -> None:
        with patch.dict("sys.modules", _otel_modules(valid=True)):
            result = add_trace_context()(None, "info", {"event": "test"})
        assert result[LOGGING_TRACE_KEY] == "0af7651916cd43dd8448eb211c80319c"
        assert result[LOGGING_SPAN_KEY] == "00f067aa0ba902b7"
        assert result[LOGGING_SAMPLED_KEY] == "1"

    def test_qualifies_trace_with_project(self) -> None:
        with patch.dict("sys.modules", _otel_modules(valid=True, sampled=False)):
            result = add_trace_context("proj")(None, "info", {})
        assert result[LOGGING_TRACE_KEY] == "projects/proj/traces/0af7651916cd43dd8448eb211c80319c"
        assert result[LOGGING_SAMPLED_KEY] == "0"

    def test_existing_trace_key_untouched(self) -> None:
        with patch.dict("sys.modules", _otel_modules(valid=True)):
            result = add_trace_context()(None, "info", {LOGGING_TRACE_KEY: "mine"})
        assert result == {LOGGING_TRACE_KEY: "mine"}

    def test_no_op_when_otel_not_installed(self) -> None:
        with patch.dict("sys.modules", {"opentelemetry": None}):
            result = add_trace_context()(None, "info", {"event": "test"})
        assert LOGGING_TRACE_KEY not in result

    def test_no_op_when_span_invalid(self) -> None:
        with patch.dict("sys.modules", _otel_modules(valid=False)):
            result = add_trace_context()(None, "info", {"event": "test"})
        assert LOGGING_TRACE_KEY not in result


class TestEnsureEventIsStr:
    def test_converts_non_string(self) -> None:
        result = ensure_event_is_str(None, "info", {"event": 42})
        assert result["event"] == "42"

    def test_preserves_string(self) -> None:
        result = ensure_event_is_str(None, "info", {"event": "hello"})
        assert result["event"] == "hello"

    def test_ignores_none(self) -> None:
        result = ensure_event_is_str(None, "info", {"event": None})
        assert result["event"] is None
