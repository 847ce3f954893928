"""Value types shared by the leak trace analysis.

Everything here is immutable once constructed: snapshot handles are owned by
the heap engine and only read through, exclusion policies are built once per
analysis, and results are handed back to the caller as-is.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# ============================================================
# TYPE ALIASES
# ============================================================

ObjectKind: TypeAlias = Literal["instance", "class", "array"]
ExcludedFields: TypeAlias = Mapping[str, frozenset[str]]
DurationMs: TypeAlias = int

# ============================================================
# SNAPSHOT HANDLES
# ============================================================


class ObjectHandle(BaseModel):
    """Identity of an object inside an open heap snapshot."""

    model_config = ConfigDict(frozen=True)

    object_id: int
    class_name: str  # runtime type; java.lang.Class for class objects
    kind: ObjectKind = "instance"
    represented_class: str | None = None  # only set for class objects

    @property
    def is_class(self) -> bool:
        return self.kind == "class"

    @property
    def is_array(self) -> bool:
        return self.kind == "array"


class ClassHandle(BaseModel):
    """A class known to the snapshot, as returned by a by-name lookup."""

    model_config = ConfigDict(frozen=True)

    class_id: int
    name: str
    superclass_name: str | None = None


class NamedReference(BaseModel):
    """An outbound reference from a holder object to a target object id."""

    model_config = ConfigDict(frozen=True)

    name: str
    target_id: int
    is_thread_local: bool = False


CandidatePath: TypeAlias = list[ObjectHandle]

# ============================================================
# EXCLUSION POLICY
# ============================================================


def _add_field(mapping: ExcludedFields, class_name: str, field_name: str) -> ExcludedFields:
    updated = dict(mapping)
    updated[class_name] = mapping.get(class_name, frozenset()) | {field_name}
    return MappingProxyType(updated)


class ExclusionConfig(BaseModel):
    """References known to be uninteresting when looking for a leak.

    ``instance_fields`` and ``static_fields`` map a fully-qualified class name
    to the field names to ignore on that class; ``threads`` holds thread names
    whose stack locals should not count as the leak cause. Both maps are
    read-only views.
    """

    model_config = ConfigDict(frozen=True)

    instance_fields: ExcludedFields = Field(default_factory=lambda: MappingProxyType({}))
    static_fields: ExcludedFields = Field(default_factory=lambda: MappingProxyType({}))
    threads: frozenset[str] = frozenset()

    @field_validator("instance_fields", "static_fields", mode="after")
    @classmethod
    def freeze_mapping(cls, value: ExcludedFields) -> ExcludedFields:
        return MappingProxyType(dict(value))

    @field_serializer("instance_fields", "static_fields")
    def serialize_mapping(self, value: ExcludedFields) -> dict[str, frozenset[str]]:
        return dict(value)

    @classmethod
    def load(cls, path: Path) -> ExclusionConfig:
        """Load an exclusion policy from a JSON document."""
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

    def with_instance_field(self, class_name: str, field_name: str) -> ExclusionConfig:
        return self.model_copy(
            update={"instance_fields": _add_field(self.instance_fields, class_name, field_name)}
        )

    def with_static_field(self, class_name: str, field_name: str) -> ExclusionConfig:
        return self.model_copy(
            update={"static_fields": _add_field(self.static_fields, class_name, field_name)}
        )

    def with_thread(self, thread_name: str) -> ExclusionConfig:
        return self.model_copy(update={"threads": self.threads | {thread_name}})

    def merged_with(self, other: ExclusionConfig) -> ExclusionConfig:
        """Union of both policies, class by class."""
        instance_fields = dict(self.instance_fields)
        for class_name, fields in other.instance_fields.items():
            instance_fields[class_name] = instance_fields.get(class_name, frozenset()) | fields
        static_fields = dict(self.static_fields)
        for class_name, fields in other.static_fields.items():
            static_fields[class_name] = static_fields.get(class_name, frozenset()) | fields
        return ExclusionConfig(
            instance_fields=instance_fields,
            static_fields=static_fields,
            threads=self.threads | other.threads,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.instance_fields or self.static_fields or self.threads)


# ============================================================
# LEAK TRACE
# ============================================================


class ReferenceType(str, Enum):
    STATIC_FIELD = "STATIC_FIELD"
    INSTANCE_FIELD = "INSTANCE_FIELD"
    LOCAL = "LOCAL"
    NONE = "NONE"


class HolderKind(str, Enum):
    CLASS = "CLASS"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"
    THREAD = "THREAD"


class LeakTraceElement(BaseModel):
    """One hop of a leak trace: who holds the next object, and through what."""

    model_config = ConfigDict(frozen=True)

    reference_name: str | None = None
    reference_type: ReferenceType = ReferenceType.NONE
    holder: HolderKind
    class_name: str
    extra: str | None = None

    def __str__(self) -> str:
        text = ""
        if self.reference_type == ReferenceType.STATIC_FIELD:
            text += "static "
        if self.holder in (HolderKind.ARRAY, HolderKind.THREAD):
            text += self.holder.value.lower() + " "
        text += self.class_name
        if self.reference_name is not None:
            text += "." + self.reference_name
        else:
            text += " instance"
        if self.extra is not None:
            text += " " + self.extra
        return text


class LeakTrace(BaseModel):
    """Elements ordered from the GC root down to the leaking object."""

    model_config = ConfigDict(frozen=True)

    elements: tuple[LeakTraceElement, ...] = ()

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[LeakTraceElement]:  # type: ignore[override]
        return iter(self.elements)

    def __str__(self) -> str:
        lines = []
        last_index = len(self.elements) - 1
        for index, element in enumerate(self.elements):
            if index == 0:
                prefix = "GC ROOT"
            elif index == last_index:
                prefix = "leaks"
            else:
                prefix = "references"
            lines.append(f"* {prefix} {element}")
        return "\n".join(lines)


# ============================================================
# ANALYSIS RESULT
# ============================================================


class Failure(BaseModel):
    """The analysis could not complete; ``exception`` holds the cause."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["failure"] = "failure"
    exception: BaseException
    duration_ms: DurationMs

    @property
    def leak_found(self) -> bool:
        return False


class NoLeak(BaseModel):
    """The suspect was collected, or no strong reference path keeps it alive."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["no_leak"] = "no_leak"
    duration_ms: DurationMs

    @property
    def leak_found(self) -> bool:
        return False


class LeakFound(BaseModel):
    """A strong reference path from a GC root to the suspect exists."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["leak_found"] = "leak_found"
    excluded_leak: bool
    class_name: str
    trace: LeakTrace
    duration_ms: DurationMs

    @property
    def leak_found(self) -> bool:
        return True


AnalysisResult: TypeAlias = Annotated[Failure | NoLeak | LeakFound, Field(discriminator="kind")]
