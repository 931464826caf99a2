"""Severity mapping for cloud log entries.

Leveled loggers describe verbosity with small integers where lower means
more severe.  The cloud sink accepts exactly eight named severities, using
the RFC 5424 syslog scale::

    0 emergency   1 alert   2 critical   3 error
    4 warning     5 notice  6 info       7 debug
"""

from __future__ import annotations

import bisect
from collections.abc import Mapping

from structcloud.errors import UnknownLevelError

# RFC 5424 syslog severity codes (§6.2.1)
# https://datatracker.ietf.org/doc/html/rfc5424#section-6.2.1
SEVERITIES: tuple[str, ...] = (
    "emergency",
    "alert",
    "critical",
    "error",
    "warning",
    "notice",
    "info",
    "debug",
)

_THRESHOLDS: tuple[int, ...] = tuple(range(len(SEVERITIES)))


def severity_for(value: int) -> str:
    """Return the severity whose threshold is the greatest one ``<= value``.

    Values below every threshold resolve to ``emergency``; values above
    ``7`` resolve to ``debug``.
    """
    idx = bisect.bisect_right(_THRESHOLDS, value) - 1
    return SEVERITIES[max(idx, 0)]


def resolve_severity(level: str, levels: Mapping[str, int]) -> str:
    """Look up *level* in *levels* and return the cloud severity name.

    Raises
    ------
    UnknownLevelError
        If *level* is not a key of *levels*.
    """
    if level not in levels:
        raise UnknownLevelError(level)
    return severity_for(levels[level])
