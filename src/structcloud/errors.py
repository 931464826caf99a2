"""Exception types raised by structcloud."""

from __future__ import annotations


class StructcloudError(Exception):
    """Base class for structcloud errors."""


class UnknownLevelError(StructcloudError, ValueError):
    """A log call named a level missing from the configured level table."""

    def __init__(self, level: str) -> None:
        super().__init__(f"Unknown log level: {level}")
        self.level = level
