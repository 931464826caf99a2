"""Tests for structcloud.instrumentation."""

from __future__ import annotations

import platform
import threading

from structcloud import __version__, instrumentation
from structcloud.instrumentation import (
    DIAGNOSTIC_INFO_KEY,
    INSTRUMENTATION_SOURCE_KEY,
    claim_instrumentation,
    diagnostic_payload,
)


class TestClaimInstrumentation:
    def test_claims_once(self) -> None:
        instrumentation.set_instrumentation_status(False)
        assert claim_instrumentation() is True
        assert claim_instrumentation() is False
        assert instrumentation.get_instrumentation_status() is True

    def test_single_winner_across_threads(self) -> None:
        instrumentation.set_instrumentation_status(False)
        results: list[bool] = []
        lock = threading.Lock()

        def _claim() -> None:
            won = claim_instrumentation()
            with lock:
                results.append(won)

        threads = [threading.Thread(target=_claim) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1


class TestDiagnosticPayload:
    def test_identifies_library_and_runtime(self) -> None:
        sources = diagnostic_payload()[DIAGNOSTIC_INFO_KEY][INSTRUMENTATION_SOURCE_KEY]
        assert sources == [
            {"name": "python-structcloud", "version": __version__},
            {"name": "python", "version": platform.python_version()},
        ]
