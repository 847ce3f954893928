"""In-memory heap engine backed by a JSON export of an object graph.

The export lists classes, objects and GC roots::

    {
      "classes": [{"id": 1, "name": "com.example.Cache", "superclass": "java.lang.Object",
                   "static_fields": {"INSTANCE": 10}}],
      "objects": [{"id": 10, "class": 1, "fields": {"entries": 11}},
                  {"id": 11, "class": 2, "kind": "array", "elements": [12, null]},
                  {"id": 20, "class": 3, "fields": {"name": 21}, "locals": [12]},
                  {"id": 21, "class": 4, "value": "main"}],
      "roots": [1, 20]
    }

Class records share the object id space: a class is its own class object.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from collections import deque
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from leak_trace.errors import SnapshotOpenError
from leak_trace.models import ClassHandle, NamedReference, ObjectHandle

logger = logging.getLogger(__name__)

CLASS_REFERENCE = "<class>"
LOCAL_REFERENCE = "<Java Local>"
JAVA_LANG_CLASS = "java.lang.Class"
JAVA_LANG_REF_REFERENCE = "java.lang.ref.Reference"
REFERENT_FIELD = "referent"

# ============================================================
# EXPORT DOCUMENT
# ============================================================


class GraphClass(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    superclass: str | None = None
    static_fields: dict[str, int | None] = Field(default_factory=dict)


class GraphObject(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    class_id: int = Field(alias="class")
    kind: Literal["instance", "array"] = "instance"
    fields: dict[str, int | None] = Field(default_factory=dict)
    elements: list[int | None] = Field(default_factory=list)
    locals: list[int] = Field(default_factory=list)
    value: str | None = None


class GraphDocument(BaseModel):
    classes: list[GraphClass] = Field(default_factory=list)
    objects: list[GraphObject] = Field(default_factory=list)
    roots: list[int] = Field(default_factory=list)


# ============================================================
# SNAPSHOT
# ============================================================


class GraphSnapshot:
    """``HeapSnapshot`` over a fully loaded ``GraphDocument``."""

    def __init__(self, document: GraphDocument) -> None:
        self._classes: dict[int, GraphClass] = {cls.id: cls for cls in document.classes}
        self._objects: dict[int, GraphObject] = {obj.id: obj for obj in document.objects}
        self._roots: frozenset[int] = frozenset(document.roots)
        self._superclasses: dict[str, str | None] = {}
        for cls in document.classes:
            self._superclasses.setdefault(cls.name, cls.superclass)
        self._inbound: dict[int, list[tuple[int, NamedReference]]] = {}
        for holder_id in [*self._classes, *self._objects]:
            for ref in self._references_of(holder_id):
                self._inbound.setdefault(ref.target_id, []).append((holder_id, ref))
        self.disposed = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphSnapshot:
        return cls(GraphDocument.model_validate(data))

    # -- lookups ------------------------------------------------

    def classes_by_name(self, name: str) -> list[ClassHandle]:
        return [
            ClassHandle(class_id=cls.id, name=cls.name, superclass_name=cls.superclass)
            for cls in self._classes.values()
            if cls.name == name
        ]

    def object_ids(self, cls: ClassHandle) -> list[int]:
        return [obj.id for obj in self._objects.values() if obj.class_id == cls.class_id]

    def get_object(self, object_id: int) -> ObjectHandle:
        if (cls := self._classes.get(object_id)) is not None:
            return ObjectHandle(
                object_id=object_id,
                class_name=JAVA_LANG_CLASS,
                kind="class",
                represented_class=cls.name,
            )
        if (obj := self._objects.get(object_id)) is not None:
            return ObjectHandle(
                object_id=object_id, class_name=self._class_name(obj.class_id), kind=obj.kind
            )
        raise KeyError(f"No object with id {object_id} in snapshot")

    def resolve_field(self, obj: ObjectHandle, field_name: str) -> ObjectHandle | None:
        if obj.is_class:
            target_id = self._classes[obj.object_id].static_fields.get(field_name)
        else:
            target_id = self._objects[obj.object_id].fields.get(field_name)
        if target_id is None or not self._exists(target_id):
            return None
        return self.get_object(target_id)

    def object_as_string(self, obj: ObjectHandle | None, limit: int | None) -> str:
        if obj is None:
            return "null"
        record = self._objects.get(obj.object_id)
        if record is not None and record.value is not None:
            return record.value if limit is None else record.value[:limit]
        name = obj.represented_class if obj.is_class else obj.class_name
        return f"{name} @ {obj.object_id:#x}"

    def outbound_references(self, obj: ObjectHandle) -> list[NamedReference]:
        return self._references_of(obj.object_id)

    def superclass_name(self, class_name: str) -> str | None:
        return self._superclasses.get(class_name)

    # -- path enumeration ---------------------------------------

    def paths_from_roots(
        self, object_id: int, exclude_map: Mapping[ClassHandle, frozenset[str]]
    ) -> Iterator[Sequence[int]]:
        """Walk inbound references towards the GC roots, shortest paths first.

        Partial paths are expanded best first, ordered by their length plus
        the distance left from their head to the nearest root. Holders with
        no strong route to a root are never expanded.
        """
        excluded = {cls.class_id: fields for cls, fields in exclude_map.items()}
        distances = self._distances_from_roots(excluded)
        if object_id not in distances:
            logger.debug("Object %#x has no strong route to a GC root", object_id)
            return
        counter = itertools.count()
        heap: list[tuple[int, int, tuple[int, ...]]] = [
            (distances[object_id], next(counter), (object_id,))
        ]
        while heap:
            _estimate, _order, path = heapq.heappop(heap)
            head = path[-1]
            if head in self._roots:
                yield list(path)
                continue
            seen: set[int] = set()
            for holder_id, ref in self._inbound.get(head, ()):
                if holder_id in seen or holder_id in path or holder_id not in distances:
                    continue
                if not self._is_strong_edge(holder_id, ref, excluded):
                    continue
                seen.add(holder_id)
                estimate = len(path) + distances[holder_id]
                heapq.heappush(heap, (estimate, next(counter), path + (holder_id,)))

    def dispose(self) -> None:
        self._inbound.clear()
        self.disposed = True

    # -- internals ----------------------------------------------

    def _exists(self, object_id: int) -> bool:
        return object_id in self._objects or object_id in self._classes

    def _class_name(self, class_id: int) -> str:
        cls = self._classes.get(class_id)
        return cls.name if cls is not None else JAVA_LANG_CLASS

    def _holder_class_id(self, holder_id: int) -> int | None:
        obj = self._objects.get(holder_id)
        return obj.class_id if obj is not None else None

    def _is_strong_edge(
        self, holder_id: int, ref: NamedReference, excluded: Mapping[int, frozenset[str]]
    ) -> bool:
        if self._is_weak_edge(holder_id, ref):
            return False
        holder_class = self._holder_class_id(holder_id)
        return holder_class is None or ref.name not in excluded.get(holder_class, ())

    def _distances_from_roots(self, excluded: Mapping[int, frozenset[str]]) -> dict[int, int]:
        """Fewest strong hops from any GC root, for every object a root reaches."""
        distances = {root: 0 for root in self._roots if self._exists(root)}
        queue = deque(distances)
        while queue:
            holder_id = queue.popleft()
            for ref in self._references_of(holder_id):
                target_id = ref.target_id
                if target_id in distances or not self._exists(target_id):
                    continue
                if not self._is_strong_edge(holder_id, ref, excluded):
                    continue
                distances[target_id] = distances[holder_id] + 1
                queue.append(target_id)
        return distances

    def _is_weak_edge(self, holder_id: int, ref: NamedReference) -> bool:
        """Referents of java.lang.ref.Reference subclasses do not keep objects alive."""
        obj = self._objects.get(holder_id)
        if obj is None or ref.name != REFERENT_FIELD:
            return False
        current: str | None = self._class_name(obj.class_id)
        seen: set[str] = set()
        while current is not None and current not in seen:
            if current == JAVA_LANG_REF_REFERENCE:
                return True
            seen.add(current)
            current = self._superclasses.get(current)
        return False

    def _references_of(self, holder_id: int) -> list[NamedReference]:
        references: list[NamedReference] = []
        if (cls := self._classes.get(holder_id)) is not None:
            for name, target_id in cls.static_fields.items():
                if target_id is not None:
                    references.append(NamedReference(name=name, target_id=target_id))
            return references

        obj = self._objects[holder_id]
        references.append(NamedReference(name=CLASS_REFERENCE, target_id=obj.class_id))
        for name, target_id in obj.fields.items():
            if target_id is not None:
                references.append(NamedReference(name=name, target_id=target_id))
        for index, target_id in enumerate(obj.elements):
            if target_id is not None:
                references.append(NamedReference(name=f"[{index}]", target_id=target_id))
        references.extend(
            NamedReference(name=LOCAL_REFERENCE, target_id=target_id, is_thread_local=True)
            for target_id in obj.locals
        )
        return references


# ============================================================
# GATEWAY
# ============================================================


class GraphSnapshotGateway:
    """Opens JSON object graph exports as ``GraphSnapshot`` instances."""

    def open_snapshot(self, path: Path) -> GraphSnapshot:
        try:
            document = GraphDocument.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            raise SnapshotOpenError(f"Cannot read object graph from {path}: {e}") from e
        logger.debug(
            "Loaded %d classes, %d objects and %d roots from %s",
            len(document.classes),
            len(document.objects),
            len(document.roots),
            path,
        )
        return GraphSnapshot(document)
