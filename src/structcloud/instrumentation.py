"""Process-wide instrumentation diagnostics.

The first entry written by any adapter in a process is accompanied by a
diagnostic entry that identifies this library as the instrumentation
source.  The "already sent" flag is shared by every adapter instance and is
only reset at process start (or explicitly, in tests).
"""

from __future__ import annotations

import platform
import threading
from typing import Any

DIAGNOSTIC_INFO_KEY = "logging.googleapis.com/diagnostic"
INSTRUMENTATION_SOURCE_KEY = "instrumentation_source"
INSTRUMENTATION_SOURCE_NAME = "python-structcloud"

_lock = threading.Lock()
_sent = False


def get_instrumentation_status() -> bool:
    """Return ``True`` once the diagnostic entry has been emitted."""
    with _lock:
        return _sent


def set_instrumentation_status(sent: bool) -> None:
    global _sent
    with _lock:
        _sent = sent


def claim_instrumentation() -> bool:
    """Atomically mark the diagnostic entry as sent.

    Returns ``True`` only for the single caller that flipped the flag, so
    exactly one diagnostic entry is produced per process.
    """
    global _sent
    with _lock:
        if _sent:
            return False
        _sent = True
        return True


def diagnostic_payload() -> dict[str, Any]:
    """Build the entry-data payload of the diagnostic entry."""
    from structcloud import __version__

    return {
        DIAGNOSTIC_INFO_KEY: {
            INSTRUMENTATION_SOURCE_KEY: [
                {"name": INSTRUMENTATION_SOURCE_NAME, "version": __version__},
                {"name": "python", "version": platform.python_version()},
            ],
        },
    }
