"""Errors that callers are expected to handle."""

from __future__ import annotations


class CurioError(Exception):
    """Base class for curio-mind errors."""


class IncompatibleSnapshotError(CurioError, ValueError):
    """A snapshot was written by an incompatible version. Nothing was loaded."""

    def __init__(self, subsystem: str, found, expected: int = 1):
        self.subsystem = subsystem
        self.found = found
        self.expected = expected
        super().__init__(
            f"Incompatible {subsystem} state version: "
            f"got {found!r}, expected {expected}"
        )


def check_version(subsystem: str, data, expected: int = 1) -> None:
    """Raise IncompatibleSnapshotError unless data carries the expected version."""
    found = data.get("version") if isinstance(data, dict) else None
    if found != expected:
        raise IncompatibleSnapshotError(subsystem, found, expected)
