"""Shortest strong reference path search with exclusion policies.

The heap engine prunes excluded instance fields while it walks the graph.
Excluded static fields and excluded threads can only be judged on a whole
candidate path, so candidates are pulled one at a time, shortest first, and
the first one that survives validation wins.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from leak_trace.gateway import HeapSnapshot, is_thread, thread_name
from leak_trace.models import (
    CandidatePath,
    ClassHandle,
    ExcludedFields,
    ExclusionConfig,
    NamedReference,
    ObjectHandle,
)

logger = logging.getLogger(__name__)


def build_class_exclude_map(
    snapshot: HeapSnapshot, excluded: ExcludedFields
) -> dict[ClassHandle, frozenset[str]]:
    """Resolve class names to snapshot classes. Names that are missing or
    ambiguous in this snapshot are dropped."""
    class_exclude_map: dict[ClassHandle, frozenset[str]] = {}
    for class_name, fields in excluded.items():
        classes = snapshot.classes_by_name(class_name)
        if len(classes) == 1:
            class_exclude_map[classes[0]] = frozenset(fields)
    return class_exclude_map


def find_connecting_reference(
    snapshot: HeapSnapshot,
    parent: ObjectHandle | None,
    child: ObjectHandle,
    instance_exclusions: ExcludedFields,
) -> NamedReference | None:
    """The reference held by ``child`` that points at ``parent``.

    References whose name is excluded for the child's class never match.
    """
    if parent is None:
        return None
    excluded_fields = instance_exclusions.get(child.class_name, frozenset())
    for ref in snapshot.outbound_references(child):
        if ref.target_id == parent.object_id and ref.name not in excluded_fields:
            return ref
    return None


def is_accepted_path(
    snapshot: HeapSnapshot,
    path: CandidatePath,
    excluded_static_fields: Mapping[ClassHandle, frozenset[str]],
    exclusions: ExclusionConfig,
) -> bool:
    """Reject a path that goes through an excluded static field or thread."""
    if not excluded_static_fields and not exclusions.threads:
        return True

    static_fields_by_class_id = {
        cls.class_id: fields for cls, fields in excluded_static_fields.items()
    }
    # The leaking object comes first, the GC root last.
    parent: ObjectHandle | None = None
    for child in path:
        if child.is_class:
            class_excluded_fields = static_fields_by_class_id.get(child.object_id)
            if class_excluded_fields is not None:
                ref = find_connecting_reference(
                    snapshot, parent, child, exclusions.instance_fields
                )
                if ref is not None and ref.name in class_excluded_fields:
                    logger.debug(
                        "Rejecting path through static field %s.%s",
                        child.represented_class,
                        ref.name,
                    )
                    return False
        elif is_thread(snapshot, child):
            name = thread_name(snapshot, child)
            if name in exclusions.threads:
                logger.debug("Rejecting path through thread '%s'", name)
                return False
        parent = child
    return True


def find_accepted_path(
    snapshot: HeapSnapshot, suspect: ObjectHandle, exclusions: ExclusionConfig
) -> CandidatePath | None:
    """Return the shortest path from a GC root to ``suspect`` allowed by
    ``exclusions``, suspect first, or ``None`` once candidates run out."""
    exclude_map = build_class_exclude_map(snapshot, exclusions.instance_fields)
    excluded_static_fields = build_class_exclude_map(snapshot, exclusions.static_fields)

    candidates = snapshot.paths_from_roots(suspect.object_id, exclude_map)
    for object_ids in candidates:
        path = [snapshot.get_object(object_id) for object_id in object_ids]
        if is_accepted_path(snapshot, path, excluded_static_fields, exclusions):
            return path
    # No more strong reference paths.
    return None
