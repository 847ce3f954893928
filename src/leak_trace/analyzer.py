"""Entry point of a leak analysis: open the dump, find the suspect, explain it."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from leak_trace.errors import InputNotFoundError
from leak_trace.gateway import HeapSnapshot, SnapshotGateway, opened_snapshot
from leak_trace.locator import WATCHER_CLASS_NAME, locate_leaking_object
from leak_trace.models import (
    AnalysisResult,
    ExclusionConfig,
    Failure,
    LeakFound,
    NoLeak,
    ObjectHandle,
)
from leak_trace.path_search import find_accepted_path
from leak_trace.trace_builder import InterfaceResolver, build_leak_trace, interfaces_unavailable

logger = logging.getLogger(__name__)


class HeapAnalyzer:
    """Checks whether a watched object is still strongly reachable in a heap dump.

    ``excluded_refs`` is tried first, merged over ``base_excluded_refs``. When
    no path survives it, the search is repeated with the base set alone and
    a path found that way is reported as an excluded leak.
    """

    def __init__(
        self,
        gateway: SnapshotGateway,
        excluded_refs: ExclusionConfig,
        base_excluded_refs: ExclusionConfig | None = None,
        *,
        watcher_class: str = WATCHER_CLASS_NAME,
        resolve_interfaces: InterfaceResolver = interfaces_unavailable,
    ) -> None:
        self.gateway = gateway
        self.base_excluded_refs = base_excluded_refs or ExclusionConfig()
        self.excluded_refs = excluded_refs.merged_with(self.base_excluded_refs)
        self.watcher_class = watcher_class
        self.resolve_interfaces = resolve_interfaces

    def check_for_leak(self, heap_dump: Path, reference_key: str) -> AnalysisResult:
        """Find the watcher keyed ``reference_key`` and the shortest strong
        reference path from a GC root to its referent."""
        start_ns = time.perf_counter_ns()

        if not heap_dump.exists():
            return Failure(exception=InputNotFoundError(heap_dump), duration_ms=_since(start_ns))

        logger.info("Analyzing %s for reference %s", heap_dump, reference_key)
        try:
            with opened_snapshot(self.gateway, heap_dump) as snapshot:
                return self._analyze(snapshot, reference_key, start_ns)
        except Exception as e:
            logger.debug("Analysis of %s failed", heap_dump, exc_info=True)
            return Failure(exception=e, duration_ms=_since(start_ns))
        finally:
            cleanup_heap_dump_artifacts(heap_dump)

    def _analyze(self, snapshot: HeapSnapshot, reference_key: str, start_ns: int) -> AnalysisResult:
        leaking_ref = locate_leaking_object(snapshot, reference_key, self.watcher_class)

        # False alarm, weak reference was cleared in between key check and heap dump.
        if leaking_ref is None:
            return NoLeak(duration_ms=_since(start_ns))

        result = self._find_leak_trace(snapshot, leaking_ref, start_ns, excluding_known_leaks=True)
        if not result.leak_found:
            logger.info("No path outside known leaks, retrying with base exclusions only")
            result = self._find_leak_trace(
                snapshot, leaking_ref, start_ns, excluding_known_leaks=False
            )
        return result

    def _find_leak_trace(
        self,
        snapshot: HeapSnapshot,
        leaking_ref: ObjectHandle,
        start_ns: int,
        *,
        excluding_known_leaks: bool,
    ) -> AnalysisResult:
        exclusions = self.excluded_refs if excluding_known_leaks else self.base_excluded_refs
        logger.debug(
            "Searching with %s exclusions",
            "full" if excluding_known_leaks else "base",
        )
        path = find_accepted_path(snapshot, leaking_ref, exclusions)

        # False alarm, no strong reference path to GC roots.
        if path is None:
            return NoLeak(duration_ms=_since(start_ns))

        trace = build_leak_trace(snapshot, path, exclusions, self.resolve_interfaces)
        return LeakFound(
            excluded_leak=not excluding_known_leaks,
            class_name=leaking_ref.class_name,
            trace=trace,
            duration_ms=_since(start_ns),
        )


def cleanup_heap_dump_artifacts(heap_dump: Path) -> list[Path]:
    """Delete files next to ``heap_dump`` that share its base name.

    The dump itself is kept. Returns the paths that were removed.
    """
    prefix = heap_dump.stem
    try:
        candidates = [
            entry
            for entry in heap_dump.parent.iterdir()
            if entry.name.startswith(prefix) and entry.name != heap_dump.name and not entry.is_dir()
        ]
    except OSError as e:
        logger.debug("Could not find temporary files to clean up: %s", e)
        return []

    removed: list[Path] = []
    for entry in candidates:
        try:
            entry.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete %s: %s", entry, e)
        else:
            removed.append(entry)
    return removed


def _since(start_ns: int) -> int:
    return (time.perf_counter_ns() - start_ns) // 1_000_000
