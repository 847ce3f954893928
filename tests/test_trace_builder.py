from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from leak_trace.graph_snapshot import GraphSnapshot
from leak_trace.models import ExclusionConfig, HolderKind, LeakTraceElement, ReferenceType
from leak_trace.trace_builder import build_leak_element, build_leak_trace


def runnable_resolver(class_name: str) -> Sequence[str] | None:
    return {"com.example.MainActivity$1": ["Runnable", "java.io.Serializable"]}.get(class_name)


@pytest.fixture
def anonymous_graph(leak_graph: dict[str, Any]) -> dict[str, Any]:
    leak_graph["classes"] += [
        {"id": 13, "name": "com.example.MainActivity$1", "superclass": "java.lang.Object"},
        {"id": 14, "name": "com.example.MainActivity$2", "superclass": "android.os.Handler"},
        {"id": 15, "name": "com.example.MainActivity$3", "superclass": "java.lang.Thread"},
        {"id": 16, "name": "com.example.MainActivity$Inner", "superclass": "java.lang.Object"},
    ]
    leak_graph["objects"] += [
        {"id": 60, "class": 13, "fields": {"this$0": 30}},
        {"id": 61, "class": 14, "fields": {"this$0": 30}},
        {"id": 62, "class": 15, "fields": {"this$0": 30, "name": 63}},
        {"id": 63, "class": 3, "value": "AsyncLoader"},
        {"id": 64, "class": 16, "fields": {"this$0": 30}},
    ]
    return leak_graph


def test_trace_is_ordered_from_gc_root_to_leak(snapshot: GraphSnapshot) -> None:
    path = [snapshot.get_object(object_id) for object_id in (30, 31, 5)]

    trace = build_leak_trace(snapshot, path, ExclusionConfig())

    assert trace.elements == (
        LeakTraceElement(
            reference_name="activities",
            reference_type=ReferenceType.STATIC_FIELD,
            holder=HolderKind.CLASS,
            class_name="com.example.Cache",
        ),
        LeakTraceElement(
            reference_name="[0]",
            reference_type=ReferenceType.INSTANCE_FIELD,
            holder=HolderKind.ARRAY,
            class_name="java.lang.Object[]",
        ),
        LeakTraceElement(
            reference_type=ReferenceType.NONE,
            holder=HolderKind.OBJECT,
            class_name="com.example.MainActivity",
        ),
    )


def test_building_twice_gives_identical_traces(snapshot: GraphSnapshot) -> None:
    path = [snapshot.get_object(object_id) for object_id in (30, 40, 8)]
    exclusions = ExclusionConfig().with_thread("main")

    assert build_leak_trace(snapshot, path, exclusions) == build_leak_trace(
        snapshot, path, exclusions
    )


def test_thread_local_reference(leak_graph: dict[str, Any]) -> None:
    leak_graph["objects"] += [
        {"id": 50, "class": 7, "fields": {"name": 51}, "locals": [30]},
        {"id": 51, "class": 3, "value": "main"},
    ]
    snapshot = GraphSnapshot.from_dict(leak_graph)
    path = [snapshot.get_object(30), snapshot.get_object(50)]

    root, leaking = build_leak_trace(snapshot, path, ExclusionConfig()).elements

    assert root == LeakTraceElement(
        reference_name="<Java Local>",
        reference_type=ReferenceType.LOCAL,
        holder=HolderKind.THREAD,
        class_name="java.lang.Thread",
        extra="(named 'main')",
    )
    assert leaking.class_name == "com.example.MainActivity"


def test_excluded_field_is_not_used_as_label(leak_graph: dict[str, Any]) -> None:
    leak_graph["objects"][4]["fields"]["lastActivity"] = 30
    snapshot = GraphSnapshot.from_dict(leak_graph)
    exclusions = ExclusionConfig().with_instance_field("com.example.Holder", "activity")

    element = build_leak_element(
        snapshot, snapshot.get_object(30), snapshot.get_object(40), exclusions
    )

    assert element.reference_name == "lastActivity"
    assert element.reference_type == ReferenceType.INSTANCE_FIELD


def test_anonymous_class_implementing_an_interface(anonymous_graph: dict[str, Any]) -> None:
    snapshot = GraphSnapshot.from_dict(anonymous_graph)
    activity = snapshot.get_object(30)

    element = build_leak_element(
        snapshot, activity, snapshot.get_object(60), ExclusionConfig(), runnable_resolver
    )

    assert element.holder == HolderKind.OBJECT
    assert element.reference_name == "this$0"
    assert element.extra == "(anonymous class implements Runnable)"


def test_anonymous_class_without_interface_information(anonymous_graph: dict[str, Any]) -> None:
    snapshot = GraphSnapshot.from_dict(anonymous_graph)

    element = build_leak_element(snapshot, None, snapshot.get_object(60), ExclusionConfig())

    assert element.holder == HolderKind.OBJECT
    assert element.extra is None


def test_anonymous_class_extending_a_class(anonymous_graph: dict[str, Any]) -> None:
    snapshot = GraphSnapshot.from_dict(anonymous_graph)

    element = build_leak_element(snapshot, None, snapshot.get_object(61), ExclusionConfig())

    assert element.holder == HolderKind.OBJECT
    assert element.extra == "(anonymous class extends android.os.Handler)"


def test_thread_takes_precedence_over_anonymous_class(anonymous_graph: dict[str, Any]) -> None:
    snapshot = GraphSnapshot.from_dict(anonymous_graph)

    element = build_leak_element(
        snapshot, None, snapshot.get_object(62), ExclusionConfig(), runnable_resolver
    )

    assert element.holder == HolderKind.THREAD
    assert element.class_name == "com.example.MainActivity$3"
    assert element.extra == "(named 'AsyncLoader')"


def test_named_inner_class_has_no_extra(anonymous_graph: dict[str, Any]) -> None:
    snapshot = GraphSnapshot.from_dict(anonymous_graph)

    element = build_leak_element(snapshot, None, snapshot.get_object(64), ExclusionConfig())

    assert element.holder == HolderKind.OBJECT
    assert element.extra is None
