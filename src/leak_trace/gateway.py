"""Interface to the heap engine that owns the decoded object graph."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from leak_trace.errors import SnapshotOpenError, SnapshotOpenFailure
from leak_trace.models import ClassHandle, NamedReference, ObjectHandle

logger = logging.getLogger(__name__)

JAVA_LANG_OBJECT = "java.lang.Object"
JAVA_LANG_THREAD = "java.lang.Thread"

# ============================================================
# HEAP ENGINE PROTOCOLS
# ============================================================


class HeapSnapshot(Protocol):
    """An open heap snapshot.

    ``paths_from_roots`` yields object id sequences, the queried object first
    and a GC root last, in non-decreasing length. The iterator is single-pass
    and skips references listed in ``exclude_map`` (holder class -> fields).
    """

    def classes_by_name(self, name: str) -> list[ClassHandle]: ...

    def object_ids(self, cls: ClassHandle) -> Sequence[int]: ...

    def get_object(self, object_id: int) -> ObjectHandle: ...

    def resolve_field(self, obj: ObjectHandle, field_name: str) -> ObjectHandle | None: ...

    def object_as_string(self, obj: ObjectHandle | None, limit: int | None) -> str: ...

    def outbound_references(self, obj: ObjectHandle) -> Sequence[NamedReference]: ...

    def superclass_name(self, class_name: str) -> str | None: ...

    def paths_from_roots(
        self, object_id: int, exclude_map: Mapping[ClassHandle, frozenset[str]]
    ) -> Iterator[Sequence[int]]: ...

    def dispose(self) -> None: ...


class SnapshotGateway(Protocol):
    """Opens heap dumps. Raises ``SnapshotOpenError`` on unreadable input."""

    def open_snapshot(self, path: Path) -> HeapSnapshot: ...


# ============================================================
# HELPERS
# ============================================================


@contextmanager
def opened_snapshot(gateway: SnapshotGateway, path: Path) -> Iterator[HeapSnapshot]:
    """Open ``path`` and dispose the snapshot on every exit path."""
    try:
        snapshot = gateway.open_snapshot(path)
    except SnapshotOpenError as e:
        raise SnapshotOpenFailure(path) from e
    try:
        yield snapshot
    finally:
        logger.debug("Disposing snapshot for %s", path)
        snapshot.dispose()


def does_extend(snapshot: HeapSnapshot, class_name: str, ancestor: str) -> bool:
    """True if ``class_name`` is ``ancestor`` or one of its subclasses."""
    current: str | None = class_name
    seen: set[str] = set()
    while current is not None and current not in seen:
        if current == ancestor:
            return True
        seen.add(current)
        current = snapshot.superclass_name(current)
    return False


def is_thread(snapshot: HeapSnapshot, obj: ObjectHandle) -> bool:
    return not obj.is_class and does_extend(snapshot, obj.class_name, JAVA_LANG_THREAD)


def thread_name(snapshot: HeapSnapshot, thread: ObjectHandle) -> str:
    return snapshot.object_as_string(snapshot.resolve_field(thread, "name"), None)
