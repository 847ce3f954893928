"""Find the suspect object through the weak reference that watched it."""

from __future__ import annotations

import logging

from leak_trace.errors import AmbiguousWatcherClassError, TokenNotFoundError
from leak_trace.gateway import HeapSnapshot
from leak_trace.models import ObjectHandle

logger = logging.getLogger(__name__)

WATCHER_CLASS_NAME = "com.squareup.leakcanary.KeyedWeakReference"
KEY_DISPLAY_LIMIT = 100


def locate_leaking_object(
    snapshot: HeapSnapshot, token: str, watcher_class: str = WATCHER_CLASS_NAME
) -> ObjectHandle | None:
    """Return the referent of the watcher whose key equals ``token``.

    ``None`` means the referent was cleared before the dump was taken, i.e.
    the object was collected after all.
    """
    classes = snapshot.classes_by_name(watcher_class)
    if len(classes) != 1:
        raise AmbiguousWatcherClassError(watcher_class, [cls.name for cls in classes])

    watcher = classes[0]
    for instance_id in snapshot.object_ids(watcher):
        weak_ref = snapshot.get_object(instance_id)
        key = snapshot.resolve_field(weak_ref, "key")
        if key is None:
            continue
        if snapshot.object_as_string(key, KEY_DISPLAY_LIMIT) == token:
            referent = snapshot.resolve_field(weak_ref, "referent")
            if referent is None:
                logger.info("Reference %s was cleared before the heap dump", token)
            return referent

    raise TokenNotFoundError(token)
