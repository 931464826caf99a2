"""structcloud: Cloud Logging entries from structlog and stdlib logging."""

from structcloud.common import (
    DEFAULT_LEVELS,
    LOGGING_SAMPLED_KEY,
    LOGGING_SPAN_KEY,
    LOGGING_TRACE_KEY,
    PYTHON_LEVELS,
    LoggingCommon,
    Options,
)
from structcloud.config import (
    configure_structlog,
    options_from_env,
    setup_cloud_logging,
)
from structcloud.entry import Entry
from structcloud.errors import StructcloudError, UnknownLevelError
from structcloud.exceptions import StackInfoProcessor, StackProcessor
from structcloud.handler import CloudLoggingHandler
from structcloud.processors import add_labels, add_trace_context, normalize_level
from structcloud.severity import SEVERITIES, resolve_severity, severity_for
from structcloud.sink import Log, Logging, LogSync
from structcloud.trace import OpenTelemetryTraceAgent, get_trace_agent, set_trace_agent

__version__ = "0.1.0"

__all__ = [
    "CloudLoggingHandler",
    "DEFAULT_LEVELS",
    "Entry",
    "LOGGING_SAMPLED_KEY",
    "LOGGING_SPAN_KEY",
    "LOGGING_TRACE_KEY",
    "Log",
    "LogSync",
    "Logging",
    "LoggingCommon",
    "OpenTelemetryTraceAgent",
    "Options",
    "PYTHON_LEVELS",
    "SEVERITIES",
    "StackInfoProcessor",
    "StackProcessor",
    "StructcloudError",
    "UnknownLevelError",
    "add_labels",
    "add_trace_context",
    "configure_structlog",
    "get_trace_agent",
    "normalize_level",
    "options_from_env",
    "resolve_severity",
    "set_trace_agent",
    "setup_cloud_logging",
    "severity_for",
]
