"""Turn an accepted path into a leak trace that reads from the GC root down."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from leak_trace.gateway import JAVA_LANG_OBJECT, HeapSnapshot, is_thread, thread_name
from leak_trace.models import (
    CandidatePath,
    ExclusionConfig,
    HolderKind,
    LeakTrace,
    LeakTraceElement,
    ObjectHandle,
    ReferenceType,
)
from leak_trace.path_search import find_connecting_reference

ANONYMOUS_CLASS_NAME_PATTERN: re.Pattern[str] = re.compile(r".+\$\d+")

# Maps a class name to its declared interfaces, or None when the class is unknown.
InterfaceResolver = Callable[[str], Sequence[str] | None]


def interfaces_unavailable(class_name: str) -> Sequence[str] | None:
    return None


def build_leak_trace(
    snapshot: HeapSnapshot,
    path: CandidatePath,
    exclusions: ExclusionConfig,
    resolve_interfaces: InterfaceResolver = interfaces_unavailable,
) -> LeakTrace:
    elements: list[LeakTraceElement] = []
    parent: ObjectHandle | None = None
    for child in path:
        elements.insert(
            0, build_leak_element(snapshot, parent, child, exclusions, resolve_interfaces)
        )
        parent = child
    return LeakTrace(elements=tuple(elements))


def build_leak_element(
    snapshot: HeapSnapshot,
    parent: ObjectHandle | None,
    child: ObjectHandle,
    exclusions: ExclusionConfig,
    resolve_interfaces: InterfaceResolver = interfaces_unavailable,
) -> LeakTraceElement:
    reference_type = ReferenceType.NONE
    reference_name: str | None = None
    ref = find_connecting_reference(snapshot, parent, child, exclusions.instance_fields)
    if ref is not None:
        reference_name = ref.name
        if child.is_class:
            reference_type = ReferenceType.STATIC_FIELD
        elif ref.is_thread_local:
            reference_type = ReferenceType.LOCAL
        else:
            reference_type = ReferenceType.INSTANCE_FIELD

    extra: str | None = None
    if child.is_class:
        holder = HolderKind.CLASS
        class_name = child.represented_class or child.class_name
    elif child.is_array:
        holder = HolderKind.ARRAY
        class_name = child.class_name
    else:
        class_name = child.class_name
        if is_thread(snapshot, child):
            holder = HolderKind.THREAD
            extra = f"(named '{thread_name(snapshot, child)}')"
        elif ANONYMOUS_CLASS_NAME_PATTERN.fullmatch(class_name):
            holder = HolderKind.OBJECT
            extra = _describe_anonymous_class(snapshot, class_name, resolve_interfaces)
        else:
            holder = HolderKind.OBJECT

    return LeakTraceElement(
        reference_name=reference_name,
        reference_type=reference_type,
        holder=holder,
        class_name=class_name,
        extra=extra,
    )


def _describe_anonymous_class(
    snapshot: HeapSnapshot, class_name: str, resolve_interfaces: InterfaceResolver
) -> str | None:
    parent_class_name = snapshot.superclass_name(class_name)
    if parent_class_name is None or parent_class_name == JAVA_LANG_OBJECT:
        # Anonymous class implementing an interface. The snapshot does not
        # record interfaces, so ask the resolver.
        interfaces = resolve_interfaces(class_name)
        if not interfaces:
            return None
        return f"(anonymous class implements {interfaces[0]})"
    return f"(anonymous class extends {parent_class_name})"
