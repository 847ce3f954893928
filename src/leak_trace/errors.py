"""Faults raised while analyzing a heap snapshot.

Components raise these; only the analyzer turns them into a ``Failure`` result.
"""

from __future__ import annotations

from pathlib import Path


class LeakTraceError(Exception):
    """Base class for analysis faults."""


class InputNotFoundError(LeakTraceError):
    def __init__(self, heap_dump: Path) -> None:
        super().__init__(f"File does not exist: {heap_dump}")
        self.heap_dump = heap_dump


class SnapshotOpenError(LeakTraceError):
    """Raised by a heap engine when a dump is malformed or unreadable."""


class SnapshotOpenFailure(LeakTraceError):
    def __init__(self, heap_dump: Path) -> None:
        super().__init__(f"Could not open heap snapshot: {heap_dump}")
        self.heap_dump = heap_dump


class AmbiguousWatcherClassError(LeakTraceError):
    def __init__(self, class_name: str, found: list[str]) -> None:
        super().__init__(f"Expecting one class for {class_name} in {found}")
        self.class_name = class_name


class TokenNotFoundError(LeakTraceError):
    def __init__(self, token: str) -> None:
        super().__init__(f"Could not find weak reference with key {token}")
        self.token = token
